from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.product import ProductRef


class CartLine(BaseModel):
    key: str
    product: ProductRef
    unit_price: Decimal
    quantity: int = 1
    line_subtotal: Optional[Decimal] = None

    # synthetic gift lines only
    is_gift: bool = False
    gift_rule_id: Optional[int] = None
    original_price: Optional[Decimal] = None
    gift_discount_type: Optional[str] = None
    gift_discount_value: Optional[Decimal] = None

    @property
    def subtotal(self) -> Decimal:
        if self.line_subtotal is not None:
            return self.line_subtotal
        return self.unit_price * self.quantity


class CartSnapshot(BaseModel):
    lines: List[CartLine] = []
    subtotal: Optional[Decimal] = None
    applied_coupons: List[str] = []

    @property
    def cart_subtotal(self) -> Decimal:
        if self.subtotal is not None:
            return self.subtotal
        return sum((line.subtotal for line in self.lines), Decimal("0"))

    @property
    def item_count(self) -> int:
        return len(self.lines)

    @property
    def quantity_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def non_gift_lines(self) -> List[CartLine]:
        return [line for line in self.lines if not line.is_gift]

    def gift_lines(self) -> List[CartLine]:
        return [line for line in self.lines if line.is_gift]

    def find_line_for_product(self, product_id: str) -> Optional[CartLine]:
        for line in self.non_gift_lines():
            if line.product.product_id == product_id:
                return line
        return None


# ---------- ENGINE OUTPUT ----------

class FeeLine(BaseModel):
    label: str
    amount: Decimal  # always negative
    rule_id: int


class AppliedRule(BaseModel):
    rule_id: int
    name: str = ""
    amount: Decimal = Decimal("0")


class CartDiscountResult(BaseModel):
    fees: List[FeeLine] = []
    applied_rules: List[AppliedRule] = []
    free_shipping: bool = False

    @property
    def applied_rule_ids(self) -> List[int]:
        return [applied.rule_id for applied in self.applied_rules]


class LineOffer(BaseModel):
    line_key: str
    rule_id: int
    offer_type: str
    discount: Decimal
    new_unit_price: Decimal


class GiftLine(BaseModel):
    key: str
    product_id: str
    quantity: int
    rule_id: int
    original_price: Decimal
    discount_type: str
    discount_value: Decimal
    unit_price: Decimal
    is_gift: bool = True


class GiftLineChanges(BaseModel):
    add: List[GiftLine] = []
    remove: List[str] = []

    @property
    def is_empty(self) -> bool:
        return not self.add and not self.remove


class CartAdjustments(BaseModel):
    fees: List[FeeLine] = []
    line_price_overrides: List[LineOffer] = []
    gift_line_changes: GiftLineChanges = Field(default_factory=GiftLineChanges)
    applied_rules: List[AppliedRule] = []
    free_shipping: bool = False

    @property
    def applied_rule_ids(self) -> List[int]:
        return [applied.rule_id for applied in self.applied_rules]
