from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.cart import CartSnapshot


class CustomerContext(BaseModel):
    customer_id: Optional[str] = None
    email: Optional[str] = None
    logged_in: bool = False
    roles: List[str] = []
    total_spent: Decimal = Decimal("0")
    order_count: int = 0

    @property
    def is_anonymous(self) -> bool:
        return not self.logged_in


class EvaluationContext(BaseModel):
    """Everything a rule may look at besides the product itself."""

    customer: CustomerContext = Field(default_factory=CustomerContext)
    cart: Optional[CartSnapshot] = None
    now: datetime = Field(default_factory=datetime.utcnow)
