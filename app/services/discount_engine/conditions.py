import logging
from datetime import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from app.schemas.context import EvaluationContext
from app.schemas.discount_rule import ConditionSchema, DiscountRuleSchema
from app.services.discount_engine.errors import ConditionEvaluationError

logger = logging.getLogger(__name__)

Evaluator = Callable[[ConditionSchema, EvaluationContext], bool]

COMPARISON_OPERATORS = frozenset(
    ["equals", "not_equals", "greater", "less", "greater_equal", "less_equal"]
)
MEMBERSHIP_OPERATORS = frozenset(["equals", "not_equals", "in", "not_in"])
EQUALITY_OPERATORS = frozenset(["equals", "not_equals"])
NEGATIVE_OPERATORS = frozenset(["not_equals", "not_in"])

WEEKDAY_NAMES = {
    "monday": 1, "tuesday": 2, "wednesday": 3, "thursday": 4,
    "friday": 5, "saturday": 6, "sunday": 7,
}

# condition types that only carry parameters for special offers / cart rules
PARAMETER_TYPES = (
    "offer_type",
    "buy_quantity",
    "get_quantity",
    "get_discount",
    "fixed_price",
    "pay_quantity",
    "free_shipping",
)


# ===================== COMPARISON HELPERS =====================


def compare(actual: Any, operator: str, expected: Any) -> bool:
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator == "greater":
        return actual > expected
    if operator == "less":
        return actual < expected
    if operator == "greater_equal":
        return actual >= expected
    if operator == "less_equal":
        return actual <= expected
    raise ConditionEvaluationError(f"unsupported operator {operator!r}")


def contains(candidates: Iterable[str], operator: str, expected: List[str]) -> bool:
    """Membership test: positive operators need any match, negative need none."""
    found = any(value in expected for value in candidates)
    if operator in NEGATIVE_OPERATORS:
        return not found
    return found


def as_number(value: Any) -> Decimal:
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ConditionEvaluationError(f"not a number: {value!r}") from exc


def as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def as_yes(value: Any) -> bool:
    return str(value).strip().lower() in ("yes", "true", "1")


# ===================== BUILT-IN EVALUATORS =====================


def always_true(condition: ConditionSchema, context: EvaluationContext) -> bool:
    return True


def user_role(condition, context):
    customer = context.customer
    if customer.is_anonymous:
        return condition.operator in NEGATIVE_OPERATORS
    return contains(customer.roles, condition.operator, as_list(condition.value))


def user_logged_in(condition, context):
    return compare(context.customer.logged_in, condition.operator, as_yes(condition.value))


def specific_user(condition, context):
    customer = context.customer
    if customer.is_anonymous:
        return condition.operator in NEGATIVE_OPERATORS

    expected = as_list(condition.value)
    if expected and all(v.isdigit() for v in expected):
        candidates = [str(customer.customer_id)] if customer.customer_id else []
    else:
        expected = [v.lower() for v in expected]
        candidates = [customer.email.lower()] if customer.email else []
    return contains(candidates, condition.operator, expected)


def cart_total(condition, context):
    if context.cart is None:
        return False
    return compare(context.cart.cart_subtotal, condition.operator, as_number(condition.value))


def cart_items(condition, context):
    if context.cart is None:
        return False
    return compare(Decimal(context.cart.item_count), condition.operator, as_number(condition.value))


def cart_quantity(condition, context):
    if context.cart is None:
        return False
    return compare(
        Decimal(context.cart.quantity_count), condition.operator, as_number(condition.value)
    )


def total_spent(condition, context):
    customer = context.customer
    spent = Decimal("0") if customer.is_anonymous else customer.total_spent
    return compare(spent, condition.operator, as_number(condition.value))


def order_count(condition, context):
    customer = context.customer
    count = 0 if customer.is_anonymous else customer.order_count
    return compare(Decimal(count), condition.operator, as_number(condition.value))


def product_in_cart(condition, context):
    if context.cart is None:
        return condition.operator in NEGATIVE_OPERATORS
    ids = []
    for line in context.cart.non_gift_lines():
        ids.append(line.product.product_id)
        if line.product.parent_id:
            ids.append(line.product.parent_id)
    return contains(ids, condition.operator, as_list(condition.value))


def category_in_cart(condition, context):
    if context.cart is None:
        return condition.operator in NEGATIVE_OPERATORS
    categories = [
        category
        for line in context.cart.non_gift_lines()
        for category in line.product.category_ids
    ]
    return contains(categories, condition.operator, as_list(condition.value))


def coupon_applied(condition, context):
    if context.cart is None:
        return condition.operator in NEGATIVE_OPERATORS
    coupons = [c.lower() for c in context.cart.applied_coupons]
    expected = [v.lower() for v in as_list(condition.value)]
    return contains(coupons, condition.operator, expected)


def weekday(condition, context):
    today = str(context.now.isoweekday())
    expected = []
    for value in as_list(condition.value):
        day = WEEKDAY_NAMES.get(value.lower())
        expected.append(str(day) if day else value)
    return contains([today], condition.operator, expected)


def _parse_clock(value: str) -> time:
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def time_range(condition, context):
    """Value "HH:MM-HH:MM"; a window whose start is after its end wraps midnight."""
    try:
        start_text, end_text = str(condition.value).split("-")
        start, end = _parse_clock(start_text), _parse_clock(end_text)
    except ValueError:
        logger.debug("Malformed time_range %r ignored", condition.value)
        return True

    current = context.now.time()
    if start <= end:
        within = start <= current <= end
    else:
        within = current >= start or current <= end

    if condition.operator == "not_equals":
        return not within
    return within


# ===================== REGISTRY =====================


class ConditionRegistry:
    """
    Maps a condition type to its evaluator and the operators it accepts.

    Types nobody registered go to the default entry, which passes.
    """

    def __init__(self, default: Evaluator = always_true):
        self._entries: Dict[str, Tuple[Evaluator, Optional[FrozenSet[str]]]] = {}
        self.default = default

    def register(
        self,
        condition_type: str,
        evaluator: Evaluator,
        operators: Optional[Iterable[str]] = None,
    ) -> None:
        allowed = frozenset(operators) if operators is not None else None
        self._entries[condition_type] = (evaluator, allowed)

    def unregister(self, condition_type: str) -> None:
        self._entries.pop(condition_type, None)

    def resolve(self, condition_type: str) -> Tuple[Evaluator, Optional[FrozenSet[str]]]:
        return self._entries.get(condition_type, (self.default, None))

    def __contains__(self, condition_type: str) -> bool:
        return condition_type in self._entries


def default_registry() -> ConditionRegistry:
    registry = ConditionRegistry()
    registry.register("user_role", user_role, MEMBERSHIP_OPERATORS)
    registry.register("user_logged_in", user_logged_in, EQUALITY_OPERATORS)
    registry.register("specific_user", specific_user, MEMBERSHIP_OPERATORS)
    registry.register("cart_total", cart_total, COMPARISON_OPERATORS)
    registry.register("cart_items", cart_items, COMPARISON_OPERATORS)
    registry.register("cart_quantity", cart_quantity, COMPARISON_OPERATORS)
    registry.register("total_spent", total_spent, COMPARISON_OPERATORS)
    registry.register("order_count", order_count, COMPARISON_OPERATORS)
    registry.register("product_in_cart", product_in_cart, MEMBERSHIP_OPERATORS)
    registry.register("category_in_cart", category_in_cart, MEMBERSHIP_OPERATORS)
    registry.register("coupon_applied", coupon_applied, MEMBERSHIP_OPERATORS)
    registry.register("weekday", weekday, MEMBERSHIP_OPERATORS)
    registry.register("time_range", time_range, EQUALITY_OPERATORS)
    for parameter_type in PARAMETER_TYPES:
        registry.register(parameter_type, always_true)
    return registry


# ===================== EVALUATOR =====================


class ConditionEvaluator:
    def __init__(self, registry: Optional[ConditionRegistry] = None):
        self.registry = registry or default_registry()

    def check(self, rule: DiscountRuleSchema, context: EvaluationContext) -> bool:
        """AND of every condition on the rule; an empty list passes."""
        for condition in rule.conditions:
            if not self.check_condition(condition, context, rule_id=rule.id):
                logger.debug(
                    "Rule %s failed condition %s %s %r",
                    rule.id, condition.type, condition.operator, condition.value,
                )
                return False
        return True

    def check_condition(
        self,
        condition: ConditionSchema,
        context: EvaluationContext,
        rule_id: Optional[int] = None,
    ) -> bool:
        if not condition.type:
            return True

        evaluator, operators = self.registry.resolve(condition.type)
        if operators is not None and condition.operator not in operators:
            logger.warning(
                "Rule %s: operator %r not allowed for %s condition",
                rule_id, condition.operator, condition.type,
            )
            return False

        try:
            return bool(evaluator(condition, context))
        except Exception as exc:
            # a broken evaluator never grants a discount
            logger.warning(
                "Rule %s: %s condition raised %s; treated as not satisfied",
                rule_id, condition.type, exc,
            )
            return False
