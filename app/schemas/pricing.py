from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.schemas.cart import AppliedRule, CartAdjustments, CartSnapshot
from app.schemas.context import CustomerContext


class PriceQuote(BaseModel):
    product_id: str
    quantity: int
    regular_price: Decimal
    final_price: Decimal
    savings: Decimal
    applied_rule_ids: List[int] = []


class QuantityPriceRow(BaseModel):
    min_quantity: int
    max_quantity: Optional[int] = None
    unit_price: Decimal
    savings: Decimal
    savings_percentage: Decimal


class CalculatePriceResponse(BaseModel):
    message: str
    product_id: str
    name: str
    currency: str
    quantity_requested: int
    regular_price: Decimal
    unit_final_price: Decimal
    total_final_price: Decimal
    savings: Decimal
    applied_discount_rules: List[int] = []
    quantity_price_table: List[QuantityPriceRow] = []
    calculated_in_ms: float


class CartDiscountRequest(BaseModel):
    cart: CartSnapshot
    customer: CustomerContext = Field(default_factory=CustomerContext)
    pass_id: Optional[str] = None
    session: Dict[str, List[AppliedRule]] = {}


class CartDiscountResponse(BaseModel):
    adjustments: CartAdjustments
    applied_rule_ids: List[int] = []
    session: Dict[str, List[AppliedRule]] = {}


class RecordUsageRequest(BaseModel):
    applied_rules: List[AppliedRule] = []
    user_id: Optional[str] = None


class RecordUsageResponse(BaseModel):
    order_id: str
    recorded_rule_ids: List[int] = []
    skipped_rule_ids: List[int] = []
