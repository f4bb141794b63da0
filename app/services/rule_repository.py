import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.enums.discounts import RuleItemType, RuleStatus, RuleType
from app.models.discount_rule import (
    DiscountRule,
    GiftProduct,
    QuantityRange,
    RuleExclusion,
    RuleItem,
)
from app.models.rule_usage import RuleUsage
from app.schemas.discount_rule import (
    DiscountRuleSchema,
    ExclusionSchema,
    GiftProductSchema,
    QuantityTierSchema,
    RuleItemsSchema,
)
from app.services.discount_engine.errors import DataAccessError

logger = logging.getLogger(__name__)


# ===================== ROW -> SCHEMA =====================


def _items_schema(items: List[RuleItem]) -> RuleItemsSchema:
    return RuleItemsSchema(
        product_ids=[i.item_id for i in items if i.item_type == RuleItemType.product.value],
        category_ids=[i.item_id for i in items if i.item_type == RuleItemType.category.value],
        tag_ids=[i.item_id for i in items if i.item_type == RuleItemType.tag.value],
    )


def _tier_schema(row: QuantityRange) -> QuantityTierSchema:
    return QuantityTierSchema(
        min_quantity=row.min_quantity,
        max_quantity=row.max_quantity,
        discount_type=row.discount_type,
        discount_value=row.discount_value,
    )


def _exclusion_schema(row: RuleExclusion) -> ExclusionSchema:
    return ExclusionSchema(type=row.exclusion_type, id=row.exclusion_id)


def _kind_payload(row: DiscountRule) -> dict:
    payload = {"rule_type": row.rule_type}
    if row.rule_type == RuleType.special_offer.value:
        payload.update(
            special_offer_type=row.special_offer_type,
            event_type=row.event_type,
            custom_event_name=row.custom_event_name,
            event_discount_type=row.event_discount_type or "percentage",
            event_discount_value=row.event_discount_value or Decimal("0"),
        )
    elif row.rule_type == RuleType.gift.value:
        payload["gift_products"] = [
            GiftProductSchema.model_validate(gift) for gift in row.gift_products
        ]
    return payload


def to_rule_schema(row: DiscountRule) -> DiscountRuleSchema:
    """Raises pydantic.ValidationError for rows that do not form a valid rule."""
    return DiscountRuleSchema(
        id=row.id,
        name=row.name,
        status=row.status,
        priority=row.priority,
        discount_type=row.discount_type,
        discount_value=row.discount_value,
        apply_to=row.apply_to,
        items=_items_schema(row.items),
        conditions=row.conditions or [],
        schedule_from=row.schedule_from,
        schedule_to=row.schedule_to,
        usage_limit=row.usage_limit,
        usage_count=row.usage_count or 0,
        exclusive=bool(row.exclusive),
        show_badge=bool(row.show_badge),
        badge_text=row.badge_text,
        quantity_tiers=[_tier_schema(q) for q in row.quantity_ranges],
        exclusions=[_exclusion_schema(e) for e in row.exclusions],
        kind=_kind_payload(row),
    )


# ===================== REPOSITORY =====================


class RuleRepository(ABC):
    """What the engines need from rule storage."""

    @abstractmethod
    def get_active_rules(self, rule_type: str, now: Optional[datetime] = None) -> List[DiscountRuleSchema]:
        raise NotImplementedError

    @abstractmethod
    def get_rule(self, rule_id: int) -> Optional[DiscountRuleSchema]:
        raise NotImplementedError

    @abstractmethod
    def get_quantity_ranges(self, rule_id: int) -> List[QuantityTierSchema]:
        raise NotImplementedError

    @abstractmethod
    def get_rule_items(self, rule_id: int) -> RuleItemsSchema:
        raise NotImplementedError

    @abstractmethod
    def get_exclusions(self, rule_id: int) -> List[ExclusionSchema]:
        raise NotImplementedError

    @abstractmethod
    def get_gift_products(self, rule_id: int) -> List[GiftProductSchema]:
        raise NotImplementedError

    @abstractmethod
    def increment_usage(self, rule_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def record_usage(
        self,
        rule_id: int,
        order_id: str,
        amount: Decimal,
        user_id: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError


class SqlRuleRepository(RuleRepository):
    def __init__(self, db: Session):
        self.db = db

    def get_active_rules(self, rule_type: str, now: Optional[datetime] = None) -> List[DiscountRuleSchema]:
        """
        Active rules of one type ordered by (priority, id).

        Status and schedule are filtered in SQL; the usage limit is checked
        on the schema so activeness is always computed at read time.
        """
        now = now or datetime.utcnow()
        try:
            rows = (
                self.db.query(DiscountRule)
                .filter(
                    DiscountRule.rule_type == rule_type,
                    DiscountRule.status == RuleStatus.active.value,
                    or_(DiscountRule.schedule_from.is_(None), DiscountRule.schedule_from <= now),
                    or_(DiscountRule.schedule_to.is_(None), DiscountRule.schedule_to >= now),
                )
                .order_by(DiscountRule.priority.asc(), DiscountRule.id.asc())
                .all()
            )
            rules = []
            for row in rows:
                try:
                    rule = to_rule_schema(row)
                except ValidationError as exc:
                    logger.warning("Rule %s is malformed and ignored: %s", row.id, exc)
                    continue
                if rule.is_active(now):
                    rules.append(rule)
            return rules
        except SQLAlchemyError as exc:
            raise DataAccessError(f"could not load {rule_type} rules") from exc

    def get_rule(self, rule_id: int) -> Optional[DiscountRuleSchema]:
        row = self._get_row(rule_id)
        if row is None:
            return None
        try:
            return to_rule_schema(row)
        except ValidationError as exc:
            logger.warning("Rule %s is malformed: %s", rule_id, exc)
            return None

    def get_quantity_ranges(self, rule_id: int) -> List[QuantityTierSchema]:
        rows = self._query_children(QuantityRange, rule_id, QuantityRange.min_quantity.asc())
        return [_tier_schema(r) for r in rows]

    def get_rule_items(self, rule_id: int) -> RuleItemsSchema:
        return _items_schema(self._query_children(RuleItem, rule_id, RuleItem.id.asc()))

    def get_exclusions(self, rule_id: int) -> List[ExclusionSchema]:
        rows = self._query_children(RuleExclusion, rule_id, RuleExclusion.id.asc())
        return [_exclusion_schema(r) for r in rows]

    def get_gift_products(self, rule_id: int) -> List[GiftProductSchema]:
        rows = self._query_children(GiftProduct, rule_id, GiftProduct.id.asc())
        return [GiftProductSchema.model_validate(r) for r in rows]

    def increment_usage(self, rule_id: int) -> None:
        try:
            self._bump_usage(rule_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DataAccessError(f"could not increment usage of rule {rule_id}") from exc

    def record_usage(
        self,
        rule_id: int,
        order_id: str,
        amount: Decimal,
        user_id: Optional[str] = None,
    ) -> bool:
        """
        Write one usage row and bump usage_count, once per (rule, order).

        Returns False when this order was already counted for the rule.
        """
        try:
            existing = (
                self.db.query(RuleUsage.id)
                .filter(RuleUsage.rule_id == rule_id, RuleUsage.order_id == order_id)
                .first()
            )
            if existing is not None:
                return False

            self.db.add(
                RuleUsage(
                    rule_id=rule_id,
                    order_id=order_id,
                    user_id=user_id,
                    discount_amount=amount,
                )
            )
            self.db.flush()
            self._bump_usage(rule_id)
            self.db.commit()
            return True
        except IntegrityError:
            # unique (rule_id, order_id) already taken
            self.db.rollback()
            return False
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DataAccessError(f"could not record usage of rule {rule_id}") from exc

    # ---------- helpers ----------

    def _bump_usage(self, rule_id: int) -> None:
        self.db.query(DiscountRule).filter(DiscountRule.id == rule_id).update(
            {DiscountRule.usage_count: DiscountRule.usage_count + 1},
            synchronize_session=False,
        )

    def _get_row(self, rule_id: int) -> Optional[DiscountRule]:
        try:
            return self.db.query(DiscountRule).filter(DiscountRule.id == rule_id).first()
        except SQLAlchemyError as exc:
            raise DataAccessError(f"could not load rule {rule_id}") from exc

    def _query_children(self, model, rule_id: int, order_by):
        try:
            return self.db.query(model).filter(model.rule_id == rule_id).order_by(order_by).all()
        except SQLAlchemyError as exc:
            raise DataAccessError(f"could not load {model.__tablename__} for rule {rule_id}") from exc
