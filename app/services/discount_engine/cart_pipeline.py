import logging
from typing import Any, List, MutableMapping, Optional, Tuple

from app.schemas.cart import AppliedRule, CartAdjustments, CartSnapshot
from app.schemas.context import EvaluationContext
from app.services.discount_engine.cart_engine import CartEngine, bind_cart
from app.services.discount_engine.exclusions import ExclusionRegistry
from app.services.discount_engine.gift_resolver import GiftResolver
from app.services.discount_engine.guards import PassGuard
from app.services.discount_engine.promotion_engine import PromotionEngine

logger = logging.getLogger(__name__)

SESSION_KEY = "applied_discount_rules"


class CartDiscountPipeline:
    """
    One cart recalculation: cart fees, then multi-buy offers, then gift lines.

    A pass id identifies one logical recalculation of one cart. Asking again
    with the same id and the same cart returns the adjustments computed the
    first time.
    """

    def __init__(
        self,
        cart_engine: CartEngine,
        promotion_engine: PromotionEngine,
        gift_resolver: GiftResolver,
        exclusions: ExclusionRegistry,
        passes: Optional[PassGuard] = None,
    ):
        self.cart_engine = cart_engine
        self.promotion_engine = promotion_engine
        self.gift_resolver = gift_resolver
        self.exclusions = exclusions
        self.passes = passes or PassGuard()

    def recalculate(
        self,
        cart: CartSnapshot,
        context: Optional[EvaluationContext] = None,
        pass_id: Optional[str] = None,
        session: Optional[MutableMapping[str, Any]] = None,
    ) -> CartAdjustments:
        pass_key = self._pass_key(pass_id, cart)
        if pass_key is not None:
            cached = self.passes.get(pass_key)
            if cached is not None:
                logger.debug("Pass %s already calculated", pass_id)
                if session is not None:
                    session[SESSION_KEY] = list(cached.applied_rules)
                return cached

        self.exclusions.clear()
        context = bind_cart(context, cart)

        cart_result = self.cart_engine.apply_cart_discounts(cart, context)
        offers = self.promotion_engine.apply_offers(cart, context)
        gift_changes = self.gift_resolver.reconcile(cart, context)

        adjustments = CartAdjustments(
            fees=cart_result.fees,
            line_price_overrides=offers,
            gift_line_changes=gift_changes,
            applied_rules=cart_result.applied_rules,
            free_shipping=cart_result.free_shipping,
        )

        if session is not None:
            session[SESSION_KEY] = list(cart_result.applied_rules)
        if pass_key is not None:
            self.passes.store(pass_key, adjustments)
        return adjustments

    @staticmethod
    def _pass_key(pass_id: Optional[str], cart: CartSnapshot) -> Optional[Tuple[str, str]]:
        # a pass id only repeats a pass for the same cart contents
        if pass_id is None:
            return None
        return (pass_id, cart.model_dump_json())

    def complete_order(
        self,
        order_id: str,
        session: Optional[MutableMapping[str, Any]],
        user_id: Optional[str] = None,
    ) -> List[int]:
        """Record the cart rules remembered in the session against ``order_id``."""
        applied: List[AppliedRule] = []
        if session:
            applied = list(session.pop(SESSION_KEY, None) or [])
        if not applied:
            return []
        return self.cart_engine.record_applied_rules(order_id, applied, user_id)
