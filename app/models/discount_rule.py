from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import relationship

from app.database.connection import Base


class DiscountRule(Base):
    __tablename__ = "discount_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    rule_type = Column(String, nullable=False, default="price_rule", index=True)
    status = Column(String, nullable=False, default="active", index=True)  # active/inactive
    priority = Column(Integer, nullable=False, default=10, index=True)
    discount_type = Column(String, nullable=False, default="percentage")  # percentage, fixed, fixed_price
    discount_value = Column(Numeric(19, 4), nullable=True, default=0)
    apply_to = Column(String, nullable=False, default="all_products")
    conditions = Column(JSON, default=[])
    schedule_from = Column(DateTime, nullable=True)
    schedule_to = Column(DateTime, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    exclusive = Column(Boolean, nullable=False, default=False)
    show_badge = Column(Boolean, nullable=False, default=True)
    badge_text = Column(String, nullable=True)

    # special offers only
    special_offer_type = Column(String, nullable=True)
    event_type = Column(String, nullable=True)
    custom_event_name = Column(String, nullable=True)
    event_discount_type = Column(String, nullable=True, default="percentage")
    event_discount_value = Column(Numeric(19, 4), nullable=True, default=0)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    quantity_ranges = relationship(
        "QuantityRange",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="QuantityRange.min_quantity",
    )
    items = relationship(
        "RuleItem",
        back_populates="rule",
        cascade="all, delete-orphan",
    )
    exclusions = relationship(
        "RuleExclusion",
        back_populates="rule",
        cascade="all, delete-orphan",
    )
    gift_products = relationship(
        "GiftProduct",
        back_populates="rule",
        cascade="all, delete-orphan",
    )


class QuantityRange(Base):
    __tablename__ = "discount_quantity_ranges"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("discount_rules.id"), nullable=False, index=True)
    min_quantity = Column(Integer, nullable=False, default=1)
    max_quantity = Column(Integer, nullable=True)  # NULL = unbounded
    discount_type = Column(String, nullable=False, default="percentage")
    discount_value = Column(Numeric(19, 4), nullable=False, default=0)
    rule = relationship("DiscountRule", back_populates="quantity_ranges")


class RuleItem(Base):
    __tablename__ = "discount_rule_items"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("discount_rules.id"), nullable=False, index=True)
    item_type = Column(String, nullable=False, index=True)  # product / category / tag
    item_id = Column(String, nullable=False, index=True)
    rule = relationship("DiscountRule", back_populates="items")


class RuleExclusion(Base):
    __tablename__ = "discount_exclusions"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("discount_rules.id"), nullable=False, index=True)
    exclusion_type = Column(String, nullable=False)  # product / category
    exclusion_id = Column(String, nullable=False)
    rule = relationship("DiscountRule", back_populates="exclusions")


class GiftProduct(Base):
    __tablename__ = "discount_gift_products"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("discount_rules.id"), nullable=False, index=True)
    product_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    discount_type = Column(String, nullable=False, default="percentage")
    discount_value = Column(Numeric(19, 4), nullable=False, default=100)
    rule = relationship("DiscountRule", back_populates="gift_products")
