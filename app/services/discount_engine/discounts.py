from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, NamedTuple, Optional

from app.enums.discounts import DiscountType
from app.services.discount_engine.errors import ConfigurationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class DiscountSpec(NamedTuple):
    discount_type: str
    discount_value: Optional[Decimal]


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Decimal:
    """
    Coerce a stored value to Decimal.

    None / "" give ``default`` (ConfigurationError when there is none).
    """
    if value is None or value == "":
        if default is None:
            raise ConfigurationError("missing numeric value")
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(f"invalid numeric value {value!r}") from exc


def calculate_discount(base: Decimal, spec: DiscountSpec) -> Decimal:
    """
    Discount amount for ``base`` under ``spec``, clamped to [0, base].

    percentage: base * v / 100
    fixed: v
    fixed_price: base - v (the whole base when v exceeds it)
    """
    if spec.discount_value is None:
        raise ConfigurationError("discount_value is missing")
    value = to_decimal(spec.discount_value)

    if spec.discount_type == DiscountType.percentage.value:
        discount = base * value / HUNDRED
    elif spec.discount_type == DiscountType.fixed.value:
        discount = value
    elif spec.discount_type == DiscountType.fixed_price.value:
        # a target price above the base leaves nothing to charge
        discount = base if value > base else base - value
    else:
        raise ConfigurationError(f"unknown discount_type {spec.discount_type!r}")

    return clamp(discount, ZERO, base)


def clamp(amount: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    if upper < lower:
        upper = lower
    return max(lower, min(amount, upper))


def floor_zero(amount: Decimal) -> Decimal:
    return amount if amount > ZERO else ZERO


def round_money(amount: Decimal, decimals: int = 2) -> Decimal:
    exponent = Decimal(1).scaleb(-decimals)
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)
