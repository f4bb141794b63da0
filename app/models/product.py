from sqlalchemy import Column, String, Numeric, Boolean, JSON, DateTime
from datetime import datetime
from app.database.connection import Base

class Product(Base):
    __tablename__ = "products"

    product_id = Column(String, primary_key=True, index=True)
    parent_id = Column(String, nullable=True, index=True)  # set for variations
    name = Column(String, nullable=False)

    category_ids = Column(JSON, default=[])
    tag_ids = Column(JSON, default=[])

    regular_price = Column(Numeric(19, 4), nullable=False)
    sale_price = Column(Numeric(19, 4), nullable=True)  # manual sale price

    currency = Column(String, default="USD")
    in_stock = Column(Boolean, default=True)
    exclude_from_discounts = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
