import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from app.core.config import settings as default_settings
from app.enums.discounts import RuleType
from app.schemas.context import EvaluationContext
from app.schemas.discount_rule import DiscountRuleSchema, PromotionRuleKind
from app.schemas.pricing import PriceQuote, QuantityPriceRow
from app.schemas.product import ProductRef
from app.services.discount_engine.conditions import ConditionEvaluator
from app.services.discount_engine.discounts import (
    HUNDRED,
    ZERO,
    DiscountSpec,
    calculate_discount,
    floor_zero,
    round_money,
    to_decimal,
)
from app.services.discount_engine.errors import DataAccessError, DiscountEngineError
from app.services.discount_engine.exclusions import ExclusionRegistry
from app.services.discount_engine.guards import ReentrancyGuard
from app.services.discount_engine.quantity_tiers import QuantityTierResolver
from app.services.discount_engine.scope import ScopeMatcher

logger = logging.getLogger(__name__)


class PriceEngine:
    """
    Resolves the final unit price of one product.

    Business rules:
    - Candidates are active price rules plus active "event_sale" special
      offers that apply to the product, in (priority, id) order.
    - Every discount is computed against the regular price and subtracted
      from the running price, which never drops below 0.
    - An exclusive rule that actually discounts stops the loop.
    - A product with a manual sale price is left alone unless
      APPLY_TO_SALE_PRODUCTS is on.
    """

    def __init__(
        self,
        repository,
        conditions: ConditionEvaluator,
        exclusions: ExclusionRegistry,
        tiers: Optional[QuantityTierResolver] = None,
        settings=default_settings,
    ):
        self.repository = repository
        self.conditions = conditions
        self.exclusions = exclusions
        self.tiers = tiers or QuantityTierResolver()
        self.settings = settings
        self.scope = ScopeMatcher(exclusions, settings)
        self._guard = ReentrancyGuard()

    # ===================== PUBLIC API =====================

    def calculate_price(
        self,
        product: ProductRef,
        regular_price,
        quantity: int = 1,
        context: Optional[EvaluationContext] = None,
    ) -> Decimal:
        final_price, _ = self._resolve(product, regular_price, quantity, context)
        return final_price

    def quote_price(
        self,
        product: ProductRef,
        regular_price,
        quantity: int = 1,
        context: Optional[EvaluationContext] = None,
    ) -> PriceQuote:
        regular = to_decimal(regular_price, ZERO)
        final_price, applied = self._resolve(product, regular, quantity, context)
        return PriceQuote(
            product_id=product.product_id,
            quantity=quantity,
            regular_price=regular,
            final_price=final_price,
            savings=floor_zero(regular - final_price),
            applied_rule_ids=applied,
        )

    def quantity_price_table(
        self,
        product: ProductRef,
        regular_price,
        context: Optional[EvaluationContext] = None,
    ) -> List[QuantityPriceRow]:
        """Tier table of the first applicable price rule that has tiers."""
        regular = to_decimal(regular_price, ZERO)
        context = context or EvaluationContext()
        decimals = self.settings.CURRENCY_DECIMALS

        for rule in self.get_candidate_rules(product, context):
            if rule.rule_type != RuleType.price_rule.value:
                continue
            if not self.tiers.has_tiers(rule) or not self.conditions.check(rule, context):
                continue

            rows = []
            for tier in sorted(rule.quantity_tiers, key=lambda t: t.min_quantity):
                try:
                    discount = calculate_discount(
                        regular, DiscountSpec(tier.discount_type, tier.discount_value)
                    )
                except DiscountEngineError as exc:
                    logger.warning("Rule %s has a bad tier: %s", rule.id, exc)
                    continue
                unit_price = round_money(floor_zero(regular - discount), decimals)
                savings = regular - unit_price
                percentage = (
                    round_money(savings / regular * HUNDRED, 2) if regular > ZERO else ZERO
                )
                rows.append(
                    QuantityPriceRow(
                        min_quantity=tier.min_quantity,
                        max_quantity=tier.max_quantity,
                        unit_price=unit_price,
                        savings=savings,
                        savings_percentage=percentage,
                    )
                )
            return rows

        return []

    # ===================== CANDIDATES =====================

    def get_candidate_rules(
        self, product: ProductRef, context: EvaluationContext
    ) -> List[DiscountRuleSchema]:
        rules = self._load_rules(RuleType.price_rule, context)
        rules += [
            rule
            for rule in self._load_rules(RuleType.special_offer, context)
            if isinstance(rule.kind, PromotionRuleKind) and rule.kind.is_event_sale
        ]
        applicable = [rule for rule in rules if self.scope.applies_to_product(rule, product)]
        return sorted(applicable, key=lambda rule: rule.sort_key)

    def _load_rules(self, rule_type: RuleType, context: EvaluationContext) -> List[DiscountRuleSchema]:
        try:
            return list(self.repository.get_active_rules(rule_type.value, context.now))
        except DataAccessError as exc:
            logger.warning("Could not load %s rules, pricing undiscounted: %s", rule_type.value, exc)
            return []

    # ===================== RESOLUTION =====================

    def _resolve(
        self,
        product: ProductRef,
        regular_price,
        quantity: int,
        context: Optional[EvaluationContext],
    ) -> Tuple[Decimal, List[int]]:
        regular = to_decimal(regular_price, ZERO)

        if not self.settings.DISCOUNTS_ENABLED:
            return regular, []
        if product.is_on_sale and not self.settings.APPLY_TO_SALE_PRODUCTS:
            return regular, []

        with self._guard.enter(product.product_id) as entered:
            if not entered:
                logger.debug("Nested price read for %s, returning base price", product.product_id)
                return regular, []

            context = context or EvaluationContext()
            candidates = self.get_candidate_rules(product, context)
            if not candidates:
                return regular, []

            effective_quantity = self._effective_quantity(product, quantity, context)
            final_price = regular
            applied: List[int] = []

            for rule in candidates:
                if not self.conditions.check(rule, context):
                    continue
                try:
                    discount = self.rule_discount(rule, regular, effective_quantity)
                except DiscountEngineError as exc:
                    logger.warning("Rule %s skipped: %s", rule.id, exc)
                    continue

                if discount <= ZERO:
                    continue

                final_price = floor_zero(final_price - discount)
                applied.append(rule.id)
                logger.debug(
                    "Rule %s took %s off product %s", rule.id, discount, product.product_id
                )

                if rule.exclusive:
                    break

            return round_money(final_price, self.settings.CURRENCY_DECIMALS), applied

    def rule_discount(self, rule: DiscountRuleSchema, regular_price: Decimal, quantity: int) -> Decimal:
        kind = rule.kind
        if isinstance(kind, PromotionRuleKind) and kind.is_event_sale:
            spec = DiscountSpec(kind.event_discount_type, kind.event_discount_value)
        else:
            spec = self.tiers.resolve(rule, quantity)
        return calculate_discount(regular_price, spec)

    @staticmethod
    def _effective_quantity(product: ProductRef, quantity: int, context: EvaluationContext) -> int:
        # the cart quantity decides the tier when the product is already in the cart
        if context.cart is not None:
            line = context.cart.find_line_for_product(product.product_id)
            if line is not None:
                return line.quantity
        return quantity
