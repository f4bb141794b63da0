from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.connection import get_db
from app.services.discount_engine.cart_engine import CartEngine
from app.services.discount_engine.cart_pipeline import CartDiscountPipeline
from app.services.discount_engine.conditions import ConditionEvaluator
from app.services.discount_engine.exclusions import ExclusionRegistry
from app.services.discount_engine.gift_resolver import GiftResolver
from app.services.discount_engine.guards import PassGuard
from app.services.discount_engine.price_engine import PriceEngine
from app.services.discount_engine.promotion_engine import PromotionEngine
from app.services.discount_engine.quantity_tiers import QuantityTierResolver
from app.services.product_service import ProductCatalog
from app.services.rule_repository import SqlRuleRepository


class DiscountServices:
    """Engines wired to one DB session; recalculation passes live as long as the request."""

    def __init__(self, db: Session, passes: PassGuard = None):
        self.db = db
        self.repository = SqlRuleRepository(db)
        self.exclusions = ExclusionRegistry(self.repository)
        conditions = ConditionEvaluator()
        tiers = QuantityTierResolver()

        self.price_engine = PriceEngine(self.repository, conditions, self.exclusions, tiers, settings)
        self.cart_engine = CartEngine(self.repository, conditions, self.exclusions, settings)
        self.promotion_engine = PromotionEngine(
            self.repository, conditions, self.exclusions, tiers, settings=settings
        )
        self.gift_resolver = GiftResolver(
            self.repository, conditions, self.exclusions, ProductCatalog(db), settings
        )
        self.pipeline = CartDiscountPipeline(
            self.cart_engine,
            self.promotion_engine,
            self.gift_resolver,
            self.exclusions,
            passes if passes is not None else PassGuard(),
        )


def get_discount_services(db: Session = Depends(get_db)) -> DiscountServices:
    return DiscountServices(db)
