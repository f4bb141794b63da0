import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from app.core.config import settings as default_settings
from app.enums.discounts import DiscountType, RuleType
from app.schemas.cart import CartLine, CartSnapshot, GiftLine, GiftLineChanges
from app.schemas.context import EvaluationContext
from app.schemas.discount_rule import DiscountRuleSchema, GiftProductSchema, GiftRuleKind
from app.services.discount_engine.cart_engine import bind_cart
from app.services.discount_engine.conditions import ConditionEvaluator
from app.services.discount_engine.discounts import HUNDRED, floor_zero, round_money, to_decimal
from app.services.discount_engine.errors import (
    DataAccessError,
    DiscountEngineError,
    GiftLineLockedError,
)
from app.services.discount_engine.exclusions import ExclusionRegistry
from app.services.discount_engine.scope import ScopeMatcher

logger = logging.getLogger(__name__)


def gift_line_key(rule_id: int, product_id: str) -> str:
    return f"gift:{rule_id}:{product_id}"


def gift_unit_price(original: Decimal, discount_type: str, discount_value) -> Decimal:
    value = to_decimal(discount_value, HUNDRED)
    if discount_type == DiscountType.percentage.value:
        return floor_zero(original * (1 - value / HUNDRED))
    return floor_zero(original - value)


class GiftResolver:
    """
    Keeps synthetic gift lines in step with the gift rules that currently qualify.

    A gift rule qualifies when its conditions pass and at least one non-gift
    line falls inside its scope. ``reconcile`` only reports what to add and
    remove; the cart owner applies the changes.
    """

    def __init__(
        self,
        repository,
        conditions: ConditionEvaluator,
        exclusions: ExclusionRegistry,
        catalog,
        settings=default_settings,
    ):
        self.repository = repository
        self.conditions = conditions
        self.exclusions = exclusions
        self.catalog = catalog
        self.settings = settings
        self.scope = ScopeMatcher(exclusions, settings)

    def is_gated(self, rule: DiscountRuleSchema, cart: CartSnapshot, context: EvaluationContext) -> bool:
        if not self.conditions.check(rule, context):
            return False
        return any(
            self.scope.applies_to_product(rule, line.product) for line in cart.non_gift_lines()
        )

    def gated_rules(self, cart: CartSnapshot, context: EvaluationContext) -> List[DiscountRuleSchema]:
        try:
            rules = self.repository.get_active_rules(RuleType.gift.value, context.now)
        except DataAccessError as exc:
            logger.warning("Could not load gift rules: %s", exc)
            return []
        rules = sorted(rules, key=lambda rule: rule.sort_key)
        return [
            rule
            for rule in rules
            if isinstance(rule.kind, GiftRuleKind) and self.is_gated(rule, cart, context)
        ]

    def reconcile(
        self, cart: CartSnapshot, context: Optional[EvaluationContext] = None
    ) -> GiftLineChanges:
        changes = GiftLineChanges()
        context = bind_cart(context, cart)

        desired: Dict[Tuple[int, str], Tuple[DiscountRuleSchema, GiftProductSchema]] = {}
        if self.settings.DISCOUNTS_ENABLED:
            for rule in self.gated_rules(cart, context):
                for gift in rule.kind.gift_products:
                    desired.setdefault((rule.id, gift.product_id), (rule, gift))

        actual: Dict[Tuple[int, str], CartLine] = {
            (line.gift_rule_id, line.product.product_id): line for line in cart.gift_lines()
        }

        for key, line in actual.items():
            wanted = desired.get(key)
            if wanted is None or wanted[1].quantity != line.quantity:
                changes.remove.append(line.key)

        for key, (rule, gift) in desired.items():
            line = actual.get(key)
            if line is not None and line.quantity == gift.quantity:
                continue
            gift_line = self.build_gift_line(rule, gift)
            if gift_line is not None:
                changes.add.append(gift_line)

        if not changes.is_empty:
            logger.debug(
                "Gift reconciliation: add %s, remove %s",
                [g.key for g in changes.add], changes.remove,
            )
        return changes

    def build_gift_line(
        self, rule: DiscountRuleSchema, gift: GiftProductSchema
    ) -> Optional[GiftLine]:
        try:
            product = self.catalog.get_product_ref(gift.product_id)
        except DiscountEngineError as exc:
            logger.warning("Gift product %s lookup failed: %s", gift.product_id, exc)
            return None
        if product is None or not product.in_stock:
            logger.info("Gift product %s unavailable for rule %s", gift.product_id, rule.id)
            return None

        original = product.sale_price if product.is_on_sale else product.regular_price
        unit_price = round_money(
            gift_unit_price(original, gift.discount_type, gift.discount_value),
            self.settings.CURRENCY_DECIMALS,
        )
        return GiftLine(
            key=gift_line_key(rule.id, gift.product_id),
            product_id=gift.product_id,
            quantity=gift.quantity,
            rule_id=rule.id,
            original_price=original,
            discount_type=gift.discount_type,
            discount_value=gift.discount_value,
            unit_price=unit_price,
        )

    @staticmethod
    def assert_user_editable(line: CartLine) -> None:
        """Gift lines change only through reconciliation."""
        if line.is_gift:
            raise GiftLineLockedError(line.key)
