from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint

from app.database.connection import Base


class RuleUsage(Base):
    __tablename__ = "discount_rule_usage"
    __table_args__ = (
        UniqueConstraint("rule_id", "order_id", name="uq_rule_usage_rule_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("discount_rules.id"), nullable=False, index=True)
    order_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)
    discount_amount = Column(Numeric(19, 4), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
