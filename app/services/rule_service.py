from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.enums.discounts import RuleItemType, RuleStatus, RuleType
from app.models.discount_rule import (
    DiscountRule,
    GiftProduct,
    QuantityRange,
    RuleExclusion,
    RuleItem,
)
from app.schemas.discount_rule import DiscountRuleCreate


def _items_from_schema(rule: DiscountRuleCreate):
    items = [RuleItem(item_type=RuleItemType.product.value, item_id=i) for i in rule.items.product_ids]
    items += [RuleItem(item_type=RuleItemType.category.value, item_id=i) for i in rule.items.category_ids]
    items += [RuleItem(item_type=RuleItemType.tag.value, item_id=i) for i in rule.items.tag_ids]
    return items


def create_rule(db: Session, rule: DiscountRuleCreate, created_by: str = None):
    kind = rule.kind
    db_rule = DiscountRule(
        name=rule.name,
        rule_type=kind.rule_type,
        status=rule.status.value,
        priority=rule.priority,
        discount_type=rule.discount_type,
        discount_value=rule.discount_value,
        apply_to=rule.apply_to,
        conditions=[c.model_dump(mode="json") for c in rule.conditions],
        schedule_from=rule.schedule_from,
        schedule_to=rule.schedule_to,
        usage_limit=rule.usage_limit,
        usage_count=0,
        exclusive=rule.exclusive,
        show_badge=rule.show_badge,
        badge_text=rule.badge_text,
        created_by=created_by,
    )

    if kind.rule_type == RuleType.special_offer.value:
        db_rule.special_offer_type = kind.special_offer_type
        db_rule.event_type = kind.event_type
        db_rule.custom_event_name = kind.custom_event_name
        db_rule.event_discount_type = kind.event_discount_type
        db_rule.event_discount_value = kind.event_discount_value

    if kind.rule_type == RuleType.gift.value:
        db_rule.gift_products = [GiftProduct(**g.model_dump()) for g in kind.gift_products]

    db_rule.items = _items_from_schema(rule)
    db_rule.quantity_ranges = [QuantityRange(**t.model_dump()) for t in rule.quantity_tiers]
    db_rule.exclusions = [
        RuleExclusion(exclusion_type=e.type.value, exclusion_id=e.id) for e in rule.exclusions
    ]

    db.add(db_rule)
    db.commit()
    db.refresh(db_rule)
    return db_rule


def get_rule(db: Session, rule_id: int):
    return db.query(DiscountRule).filter(DiscountRule.id == rule_id).first()


def list_rules(db: Session, rule_type: str = None):
    query = db.query(DiscountRule)
    if rule_type:
        query = query.filter(DiscountRule.rule_type == rule_type)
    return query.order_by(DiscountRule.priority.asc(), DiscountRule.id.asc()).all()


def _set_status(db: Session, rule_id: int, status: RuleStatus, exclusions=None):
    db_rule = get_rule(db, rule_id)
    if not db_rule:
        return None
    db_rule.status = status.value
    db.commit()
    db.refresh(db_rule)
    if exclusions is not None:
        exclusions.invalidate_rule(rule_id)
    return db_rule


def activate_rule(db: Session, rule_id: int, exclusions=None):
    return _set_status(db, rule_id, RuleStatus.active, exclusions)


def deactivate_rule(db: Session, rule_id: int, exclusions=None):
    return _set_status(db, rule_id, RuleStatus.inactive, exclusions)


def duplicate_rule(db: Session, rule_id: int):
    """Inactive copy named "<name> (Copy)" with a fresh usage count and every sub-record."""
    source = get_rule(db, rule_id)
    if not source:
        return None

    copied_columns = [
        "rule_type", "priority", "discount_type", "discount_value", "apply_to",
        "schedule_from", "schedule_to", "usage_limit", "exclusive", "show_badge",
        "badge_text", "special_offer_type", "event_type", "custom_event_name",
        "event_discount_type", "event_discount_value", "created_by",
    ]
    copy = DiscountRule(**{name: getattr(source, name) for name in copied_columns})
    copy.name = f"{source.name} (Copy)"
    copy.status = RuleStatus.inactive.value
    copy.usage_count = 0
    copy.conditions = [dict(c) for c in (source.conditions or [])]

    copy.quantity_ranges = [
        QuantityRange(
            min_quantity=q.min_quantity,
            max_quantity=q.max_quantity,
            discount_type=q.discount_type,
            discount_value=q.discount_value,
        )
        for q in source.quantity_ranges
    ]
    copy.items = [RuleItem(item_type=i.item_type, item_id=i.item_id) for i in source.items]
    copy.exclusions = [
        RuleExclusion(exclusion_type=e.exclusion_type, exclusion_id=e.exclusion_id)
        for e in source.exclusions
    ]
    copy.gift_products = [
        GiftProduct(
            product_id=g.product_id,
            quantity=g.quantity,
            discount_type=g.discount_type,
            discount_value=g.discount_value,
        )
        for g in source.gift_products
    ]

    db.add(copy)
    db.commit()
    db.refresh(copy)
    return copy


def delete_rule(db: Session, rule_id: int, exclusions=None):
    db_rule = get_rule(db, rule_id)
    if not db_rule:
        return False

    db.delete(db_rule)
    db.commit()
    if exclusions is not None:
        exclusions.invalidate_rule(rule_id)
    return True


# --------------------------
# TEMPLATES
# --------------------------
def _template_data(key: str, now: datetime):
    templates = {
        "bulk_discount": dict(
            name="Bulk Quantity Discount",
            discount_value=0,
            quantity_tiers=[
                {"min_quantity": 2, "max_quantity": 4, "discount_type": "percentage", "discount_value": 5},
                {"min_quantity": 5, "max_quantity": 9, "discount_type": "percentage", "discount_value": 10},
                {"min_quantity": 10, "discount_type": "percentage", "discount_value": 15},
            ],
            kind={"rule_type": RuleType.price_rule.value},
        ),
        "bogo": dict(
            name="Buy One Get One Free",
            discount_value=100,
            conditions=[{"type": "offer_type", "operator": "equals", "value": "bogo"}],
            kind={"rule_type": RuleType.special_offer.value, "special_offer_type": "bogo"},
        ),
        "buy_x_get_y": dict(
            name="Buy 2 Get 3rd 50% Off",
            discount_value=50,
            conditions=[
                {"type": "offer_type", "operator": "equals", "value": "buy_x_get_y"},
                {"type": "buy_quantity", "operator": "equals", "value": 2},
                {"type": "get_quantity", "operator": "equals", "value": 1},
                {"type": "get_discount", "operator": "equals", "value": 50},
            ],
            kind={"rule_type": RuleType.special_offer.value, "special_offer_type": "buy_x_get_y"},
        ),
        "cart_total_discount": dict(
            name="Spend $100, Get 10% Off",
            discount_value=10,
            conditions=[{"type": "cart_total", "operator": "greater_equal", "value": 100}],
            kind={"rule_type": RuleType.cart_rule.value},
        ),
        "free_shipping": dict(
            name="Free Shipping Over $50",
            discount_value=0,
            conditions=[
                {"type": "cart_total", "operator": "greater_equal", "value": 50},
                {"type": "free_shipping", "operator": "equals", "value": "yes"},
            ],
            kind={"rule_type": RuleType.cart_rule.value},
        ),
        "first_order": dict(
            name="15% Off First Order",
            discount_value=15,
            conditions=[{"type": "order_count", "operator": "equals", "value": 0}],
            kind={"rule_type": RuleType.cart_rule.value},
        ),
        "vip_discount": dict(
            name="VIP 20% Discount",
            discount_value=20,
            conditions=[{"type": "total_spent", "operator": "greater_equal", "value": 500}],
            kind={"rule_type": RuleType.cart_rule.value},
        ),
        "free_gift": dict(
            name="Free Gift with Purchase",
            discount_value=100,
            kind={"rule_type": RuleType.gift.value},
        ),
        "flash_sale": dict(
            name="Flash Sale 25% Off",
            discount_value=25,
            schedule_from=now,
            schedule_to=now + timedelta(hours=24),
            kind={"rule_type": RuleType.price_rule.value},
        ),
        "category_sale": dict(
            name="Category Sale 20% Off",
            discount_value=20,
            apply_to="categories",
            kind={"rule_type": RuleType.price_rule.value},
        ),
    }
    return templates.get(key)


def create_rule_from_template(db: Session, template_key: str, created_by: str = None, now: datetime = None):
    """Rules made from templates always start inactive so they can be configured first."""
    data = _template_data(template_key, now or datetime.utcnow())
    if data is None:
        return None
    data["status"] = RuleStatus.inactive
    return create_rule(db, DiscountRuleCreate(**data), created_by=created_by)
