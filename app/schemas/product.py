from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel


class ProductBase(BaseModel):
    name: str
    parent_id: Optional[str] = None
    category_ids: List[str] = []
    tag_ids: List[str] = []
    regular_price: Decimal
    sale_price: Optional[Decimal] = None
    currency: str = "USD"
    in_stock: bool = True
    exclude_from_discounts: bool = False

class ProductCreate(ProductBase):
    product_id: str

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category_ids: Optional[List[str]] = None
    tag_ids: Optional[List[str]] = None
    regular_price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    in_stock: Optional[bool] = None
    exclude_from_discounts: Optional[bool] = None


class ProductRef(BaseModel):
    """The slice of a product the discount engines read."""

    product_id: str
    parent_id: Optional[str] = None
    category_ids: List[str] = []
    tag_ids: List[str] = []
    regular_price: Decimal = Decimal("0")
    sale_price: Optional[Decimal] = None
    in_stock: bool = True
    exclude_from_discounts: bool = False

    class Config:
        from_attributes = True

    @property
    def is_on_sale(self) -> bool:
        return self.sale_price is not None

    @property
    def is_variation(self) -> bool:
        return bool(self.parent_id)
