import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from app.core.config import settings as default_settings
from app.enums.discounts import RuleType, SpecialOfferType
from app.schemas.cart import CartLine, CartSnapshot, LineOffer
from app.schemas.context import EvaluationContext
from app.schemas.discount_rule import DiscountRuleSchema, PromotionRuleKind
from app.services.discount_engine.cart_engine import bind_cart
from app.services.discount_engine.conditions import ConditionEvaluator
from app.services.discount_engine.discounts import (
    HUNDRED,
    ZERO,
    clamp,
    floor_zero,
    round_money,
    to_decimal,
)
from app.services.discount_engine.errors import (
    ConfigurationError,
    DataAccessError,
    DiscountEngineError,
)
from app.services.discount_engine.exclusions import ExclusionRegistry
from app.services.discount_engine.quantity_tiers import QuantityTierResolver
from app.services.discount_engine.scope import ScopeMatcher

logger = logging.getLogger(__name__)

# (rule, line, tiers) -> discount for the whole line, or None when not even one set is present
OfferStrategy = Callable[[DiscountRuleSchema, CartLine, QuantityTierResolver], Optional[Decimal]]


# ===================== OFFER PARAMETERS =====================


def offer_param(rule: DiscountRuleSchema, name: str, default) -> Decimal:
    return to_decimal(rule.condition_value(name), Decimal(default))


def offer_count(rule: DiscountRuleSchema, name: str, default: int) -> int:
    value = int(offer_param(rule, name, default))
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive", rule_id=rule.id)
    return value


# ===================== STRATEGIES =====================


def bogo(rule, line, tiers):
    free_sets = line.quantity // 2
    if free_sets < 1:
        return None
    spec = tiers.resolve(rule, line.quantity)
    percent = to_decimal(spec.discount_value)
    return line.unit_price * free_sets * percent / HUNDRED


def buy_x_get_y(rule, line, tiers):
    buy_qty = offer_count(rule, "buy_quantity", 1)
    get_qty = offer_count(rule, "get_quantity", 1)
    get_discount = offer_param(rule, "get_discount", 100)

    sets = line.quantity // (buy_qty + get_qty)
    if sets < 1:
        return None
    return line.unit_price * get_qty * sets * get_discount / HUNDRED


def buy_x_for_y(rule, line, tiers):
    buy_qty = offer_count(rule, "buy_quantity", 3)
    fixed_price = offer_param(rule, "fixed_price", 0)

    sets = line.quantity // buy_qty
    if sets < 1:
        return None
    return floor_zero(line.unit_price * buy_qty * sets - fixed_price * sets)


def x_for_price_of_y(rule, line, tiers):
    get_qty = offer_count(rule, "get_quantity", 3)
    pay_qty = int(offer_param(rule, "pay_quantity", 2))

    sets = line.quantity // get_qty
    if sets < 1:
        return None
    free_per_set = max(0, get_qty - pay_qty)
    return line.unit_price * free_per_set * sets


class OfferRegistry:
    """Offer kind -> strategy, with "bogo" as the fallback kind."""

    def __init__(self, default_kind: str = SpecialOfferType.bogo.value):
        self._strategies: Dict[str, OfferStrategy] = {}
        self.default_kind = default_kind

    def register(self, kind: str, strategy: OfferStrategy) -> None:
        self._strategies[kind] = strategy

    def resolve(self, kind: str) -> OfferStrategy:
        strategy = self._strategies.get(kind)
        if strategy is None:
            raise ConfigurationError(f"unknown offer type {kind!r}")
        return strategy

    def __contains__(self, kind: str) -> bool:
        return kind in self._strategies


def default_offers() -> OfferRegistry:
    registry = OfferRegistry()
    registry.register(SpecialOfferType.bogo.value, bogo)
    registry.register(SpecialOfferType.buy_x_get_y.value, buy_x_get_y)
    registry.register(SpecialOfferType.buy_x_for_y.value, buy_x_for_y)
    registry.register(SpecialOfferType.x_for_price_of_y.value, x_for_price_of_y)
    return registry


# ===================== ENGINE =====================


class PromotionEngine:
    """
    Per-line multi-buy discounts.

    When several offers match one line, the one processed last (in priority
    order) replaces the earlier result.
    """

    def __init__(
        self,
        repository,
        conditions: ConditionEvaluator,
        exclusions: ExclusionRegistry,
        tiers: Optional[QuantityTierResolver] = None,
        offers: Optional[OfferRegistry] = None,
        settings=default_settings,
    ):
        self.repository = repository
        self.conditions = conditions
        self.exclusions = exclusions
        self.tiers = tiers or QuantityTierResolver()
        self.offers = offers or default_offers()
        self.settings = settings
        self.scope = ScopeMatcher(exclusions, settings)

    def offer_kind(self, rule: DiscountRuleSchema) -> str:
        kind = rule.condition_value("offer_type")
        if kind:
            return str(kind).strip()
        own = getattr(rule.kind, "special_offer_type", None)
        if not own:
            return self.offers.default_kind
        if own not in self.offers:
            raise ConfigurationError(f"unknown special offer type {own!r}", rule_id=rule.id)
        return own

    def apply_offers(
        self, cart: CartSnapshot, context: Optional[EvaluationContext] = None
    ) -> List[LineOffer]:
        if not self.settings.DISCOUNTS_ENABLED or not cart.lines:
            return []

        context = bind_cart(context, cart)
        results: Dict[str, LineOffer] = {}

        for rule in self._load_rules(context):
            if not self.conditions.check(rule, context):
                continue
            try:
                rule_offers = self._offers_for_rule(rule, cart)
            except DiscountEngineError as exc:
                logger.warning("Special offer %s skipped: %s", rule.id, exc)
                continue

            for offer in rule_offers:
                if offer.line_key in results:
                    logger.debug(
                        "Offer %s replaces offer %s on line %s",
                        rule.id, results[offer.line_key].rule_id, offer.line_key,
                    )
                results[offer.line_key] = offer

        return list(results.values())

    def _offers_for_rule(self, rule: DiscountRuleSchema, cart: CartSnapshot) -> List[LineOffer]:
        kind = self.offer_kind(rule)
        strategy = self.offers.resolve(kind)
        decimals = self.settings.CURRENCY_DECIMALS

        offers = []
        for line in cart.non_gift_lines():
            if line.quantity <= 0:
                continue
            if not self.scope.applies_to_product(rule, line.product):
                continue

            discount = strategy(rule, line, self.tiers)
            if discount is None:
                continue

            line_total = line.unit_price * line.quantity
            discount = round_money(clamp(discount, ZERO, line_total), decimals)
            new_unit_price = round_money(
                floor_zero((line_total - discount) / line.quantity), decimals
            )
            offers.append(
                LineOffer(
                    line_key=line.key,
                    rule_id=rule.id,
                    offer_type=kind,
                    discount=discount,
                    new_unit_price=new_unit_price,
                )
            )
        return offers

    def _load_rules(self, context: EvaluationContext) -> List[DiscountRuleSchema]:
        try:
            rules = self.repository.get_active_rules(RuleType.special_offer.value, context.now)
        except DataAccessError as exc:
            logger.warning("Could not load special offers: %s", exc)
            return []
        multi_buy = [
            rule
            for rule in rules
            if not (isinstance(rule.kind, PromotionRuleKind) and rule.kind.is_event_sale)
        ]
        return sorted(multi_buy, key=lambda rule: rule.sort_key)
