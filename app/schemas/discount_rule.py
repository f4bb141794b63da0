from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from app.enums.discounts import ExclusionType, RuleStatus, SpecialOfferType


class ConditionSchema(BaseModel):
    type: str = ""
    operator: str = "equals"
    value: Any = ""


class QuantityTierSchema(BaseModel):
    min_quantity: int = 1
    max_quantity: Optional[int] = None
    discount_type: str = "percentage"
    discount_value: Decimal = Decimal("0")


class RuleItemsSchema(BaseModel):
    product_ids: List[str] = []
    category_ids: List[str] = []
    tag_ids: List[str] = []


class ExclusionSchema(BaseModel):
    type: ExclusionType
    id: str


class GiftProductSchema(BaseModel):
    product_id: str
    quantity: int = 1
    discount_type: str = "percentage"
    discount_value: Decimal = Decimal("100")

    class Config:
        from_attributes = True


# ---------- RULE KINDS ----------

class PriceRuleKind(BaseModel):
    rule_type: Literal["price_rule"] = "price_rule"


class CartRuleKind(BaseModel):
    rule_type: Literal["cart_rule"] = "cart_rule"


class PromotionRuleKind(BaseModel):
    rule_type: Literal["special_offer"] = "special_offer"
    special_offer_type: Optional[str] = None
    event_type: Optional[str] = None
    custom_event_name: Optional[str] = None
    event_discount_type: str = "percentage"
    event_discount_value: Decimal = Decimal("0")

    @property
    def is_event_sale(self) -> bool:
        return self.special_offer_type == SpecialOfferType.event_sale.value


class GiftRuleKind(BaseModel):
    rule_type: Literal["gift"] = "gift"
    gift_products: List[GiftProductSchema] = []


RuleKind = Annotated[
    Union[PriceRuleKind, CartRuleKind, PromotionRuleKind, GiftRuleKind],
    Field(discriminator="rule_type"),
]


# ---------- RULE ----------

class DiscountRuleBase(BaseModel):
    name: str
    status: RuleStatus = RuleStatus.active
    priority: int = 10
    discount_type: str = "percentage"
    discount_value: Optional[Decimal] = None
    apply_to: str = "all_products"
    items: RuleItemsSchema = RuleItemsSchema()
    conditions: List[ConditionSchema] = []
    schedule_from: Optional[datetime] = None
    schedule_to: Optional[datetime] = None
    usage_limit: Optional[int] = None
    exclusive: bool = False
    show_badge: bool = True
    badge_text: Optional[str] = None
    quantity_tiers: List[QuantityTierSchema] = []
    exclusions: List[ExclusionSchema] = []
    kind: RuleKind


class DiscountRuleCreate(DiscountRuleBase):
    pass


class DiscountRuleSchema(DiscountRuleBase):
    """A stored rule as the engines see it, sub-records included."""

    id: int
    usage_count: int = 0

    @property
    def rule_type(self) -> str:
        return self.kind.rule_type

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.priority, self.id)

    def is_within_schedule(self, now: datetime) -> bool:
        if self.schedule_from is not None and now < self.schedule_from:
            return False
        if self.schedule_to is not None and now > self.schedule_to:
            return False
        return True

    def has_exceeded_usage_limit(self) -> bool:
        # 0 / None both mean "no limit"
        if not self.usage_limit:
            return False
        return self.usage_count >= self.usage_limit

    def is_active(self, now: datetime) -> bool:
        if self.status != RuleStatus.active:
            return False
        if not self.is_within_schedule(now):
            return False
        return not self.has_exceeded_usage_limit()

    def condition_value(self, condition_type: str, default: Any = None) -> Any:
        """Value of the first condition of the given type, or ``default``."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition.value
        return default

    def conditions_of_type(self, condition_type: str) -> List[ConditionSchema]:
        return [c for c in self.conditions if c.type == condition_type]
