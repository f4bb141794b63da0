import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from app.core.config import settings as default_settings
from app.enums.discounts import ApplyTo, RuleType
from app.schemas.cart import AppliedRule, CartDiscountResult, CartSnapshot, FeeLine
from app.schemas.context import EvaluationContext
from app.schemas.discount_rule import DiscountRuleSchema
from app.services.discount_engine.conditions import ConditionEvaluator, as_yes
from app.services.discount_engine.discounts import (
    ZERO,
    DiscountSpec,
    calculate_discount,
    round_money,
)
from app.services.discount_engine.errors import DataAccessError, DiscountEngineError
from app.services.discount_engine.exclusions import ExclusionRegistry
from app.services.discount_engine.scope import ScopeMatcher

logger = logging.getLogger(__name__)


def bind_cart(context: Optional[EvaluationContext], cart: CartSnapshot) -> EvaluationContext:
    if context is None:
        return EvaluationContext(cart=cart)
    if context.cart is cart:
        return context
    return context.model_copy(update={"cart": cart})


class CartEngine:
    """Cart-level fee discounts and the usage accounting that follows an order."""

    def __init__(
        self,
        repository,
        conditions: ConditionEvaluator,
        exclusions: ExclusionRegistry,
        settings=default_settings,
    ):
        self.repository = repository
        self.conditions = conditions
        self.exclusions = exclusions
        self.settings = settings
        self.scope = ScopeMatcher(exclusions, settings)

    def apply_cart_discounts(
        self, cart: CartSnapshot, context: Optional[EvaluationContext] = None
    ) -> CartDiscountResult:
        result = CartDiscountResult()
        if not self.settings.DISCOUNTS_ENABLED or not cart.lines:
            return result

        context = bind_cart(context, cart)
        rules = self._load_rules(context)

        for rule in rules:
            if not self.conditions.check(rule, context):
                continue
            try:
                base = self.discount_base(rule, cart)
                amount = calculate_discount(
                    base, DiscountSpec(rule.discount_type, rule.discount_value)
                )
            except DiscountEngineError as exc:
                logger.warning("Cart rule %s skipped: %s", rule.id, exc)
                continue

            amount = round_money(amount, self.settings.CURRENCY_DECIMALS)
            if amount <= ZERO:
                continue

            result.fees.append(
                FeeLine(label=self.fee_label(rule), amount=-amount, rule_id=rule.id)
            )
            result.applied_rules.append(
                AppliedRule(rule_id=rule.id, name=rule.name, amount=amount)
            )
            logger.debug("Cart rule %s applied %s", rule.id, amount)

            if rule.exclusive:
                break

        result.free_shipping = self.has_free_shipping(rules, cart, context)
        return result

    def discount_base(self, rule: DiscountRuleSchema, cart: CartSnapshot) -> Decimal:
        if rule.apply_to == ApplyTo.all_products.value:
            return cart.cart_subtotal
        return sum(
            (
                line.subtotal
                for line in cart.non_gift_lines()
                if self.scope.applies_to_product(rule, line.product)
            ),
            ZERO,
        )

    def fee_label(self, rule: DiscountRuleSchema) -> str:
        if self.settings.SHOW_CART_DISCOUNT_LABEL and rule.name:
            return rule.name
        return self.settings.CART_DISCOUNT_LABEL

    def has_free_shipping(
        self,
        rules: List[DiscountRuleSchema],
        cart: CartSnapshot,
        context: EvaluationContext,
    ) -> bool:
        """
        Shipping is free when a condition-passing cart rule carries
        ``free_shipping = yes`` together with a satisfied ``cart_total``
        condition, whether or not the rule produced a fee.
        """
        for rule in rules:
            flagged = any(as_yes(c.value) for c in rule.conditions_of_type("free_shipping"))
            if not flagged:
                continue
            totals = rule.conditions_of_type("cart_total")
            if not totals:
                continue
            if not self.conditions.check(rule, context):
                continue
            if all(self.conditions.check_condition(c, context, rule.id) for c in totals):
                return True
        return False

    def _load_rules(self, context: EvaluationContext) -> List[DiscountRuleSchema]:
        try:
            rules = self.repository.get_active_rules(RuleType.cart_rule.value, context.now)
        except DataAccessError as exc:
            logger.warning("Could not load cart rules: %s", exc)
            return []
        return sorted(rules, key=lambda rule: rule.sort_key)

    # ===================== ORDER COMPLETION =====================

    def record_applied_rules(
        self,
        order_id: str,
        applied_rules: Iterable[Union[int, AppliedRule]],
        user_id: Optional[str] = None,
    ) -> List[int]:
        """
        Record usage for each rule applied to ``order_id``.

        Safe to call more than once for the same order: the repository keeps
        one usage row per (rule, order). Returns the ids recorded by this call.
        """
        recorded: List[int] = []
        for applied in applied_rules:
            if isinstance(applied, AppliedRule):
                rule_id, amount = applied.rule_id, applied.amount
            else:
                rule_id, amount = int(applied), ZERO

            try:
                if self.repository.record_usage(rule_id, order_id, amount, user_id):
                    recorded.append(rule_id)
                else:
                    logger.debug("Usage of rule %s for order %s already recorded", rule_id, order_id)
            except DataAccessError as exc:
                logger.warning(
                    "Could not record usage of rule %s for order %s: %s", rule_id, order_id, exc
                )
        return recorded
