import uuid
from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.dependencies.discounts import DiscountServices
from app.models.discount_rule import DiscountRule
from app.routes.cart import cart_discounts, record_applied_rules
from app.routes.pricing.calculate_price import calculate_price
from app.schemas.cart import CartSnapshot
from app.schemas.discount_rule import DiscountRuleCreate
from app.schemas.pricing import CartDiscountRequest, RecordUsageRequest
from app.schemas.product import ProductCreate, ProductUpdate
from app.services.discount_engine.cart_pipeline import SESSION_KEY
from app.services.discount_engine.guards import PassGuard
from app.services.product_service import (
    create_product,
    get_product,
    set_global_exclusion,
    to_product_ref,
    update_product,
)
from app.services.rule_service import create_rule


def _services(db):
    return DiscountServices(db, passes=PassGuard())


def _create_test_product(db, prod_id=None, regular_price="200", **fields):
    payload = ProductCreate(
        product_id=prod_id or f"E2E_PROD_{uuid.uuid4().hex[:6].upper()}",
        name="E2E Test Product",
        regular_price=Decimal(regular_price),
        **fields,
    )
    return create_product(db, payload)


def _cart_for(db, *products_and_quantities):
    lines = []
    for product, quantity in products_and_quantities:
        ref = to_product_ref(db, product)
        lines.append(
            {
                "key": f"line-{product.product_id}",
                "product": ref,
                "unit_price": ref.regular_price,
                "quantity": quantity,
            }
        )
    return CartSnapshot(lines=lines)


@pytest.mark.order(1)
def test_create_product_service(db):
    created = _create_test_product(db, regular_price="250", category_ids=["shoes"])

    fetched = get_product(db, created.product_id)
    assert fetched is not None
    assert fetched.regular_price == Decimal("250")
    assert fetched.category_ids == ["shoes"]

    set_global_exclusion(db, created.product_id, True)
    assert to_product_ref(db, fetched).exclude_from_discounts is True

    updated = update_product(db, created.product_id, ProductUpdate(sale_price=Decimal("199")))
    assert updated.sale_price == Decimal("199")
    assert updated.regular_price == Decimal("250")
    assert update_product(db, "NO_SUCH_PRODUCT", ProductUpdate(name="x")) is None


@pytest.mark.order(2)
def test_variation_inherits_parent_categories(db):
    parent = _create_test_product(db, category_ids=["shirts"], tag_ids=["summer"])
    variation = _create_test_product(db, parent_id=parent.product_id)

    ref = to_product_ref(db, variation)

    assert ref.is_variation
    assert ref.category_ids == ["shirts"]
    assert ref.tag_ids == ["summer"]


@pytest.mark.order(3)
def test_calculate_price_route_with_member_rule(db):
    prod = _create_test_product(db, regular_price="200")
    rule = create_rule(
        db,
        DiscountRuleCreate(
            name="Members 15% off",
            discount_type="percentage",
            discount_value="15",
            apply_to="specific_products",
            items={"product_ids": [prod.product_id]},
            conditions=[{"type": "user_logged_in", "operator": "equals", "value": "yes"}],
            quantity_tiers=[
                {"min_quantity": 5, "discount_type": "percentage", "discount_value": "25"},
            ],
            kind={"rule_type": "price_rule"},
        ),
    )
    services = _services(db)

    guest = calculate_price(product_id=prod.product_id, quantity=1, customer_id=None, services=services)
    member = calculate_price(product_id=prod.product_id, quantity=1, customer_id="42", services=services)
    bulk = calculate_price(product_id=prod.product_id, quantity=5, customer_id="42", services=services)

    assert guest.unit_final_price == Decimal("200")
    assert guest.applied_discount_rules == []
    assert member.unit_final_price == Decimal("170.00")
    assert member.savings == Decimal("30.00")
    assert member.applied_discount_rules == [rule.id]
    assert bulk.unit_final_price == Decimal("150.00")
    assert bulk.total_final_price == Decimal("750.00")
    assert [row.unit_price for row in member.quantity_price_table] == [Decimal("150.00")]


@pytest.mark.order(4)
def test_calculate_price_route_rejects_bad_input(db):
    services = _services(db)

    with pytest.raises(HTTPException) as missing:
        calculate_price(product_id="NO_SUCH_PRODUCT", quantity=1, customer_id=None, services=services)
    assert missing.value.status_code == 404

    prod = _create_test_product(db)
    with pytest.raises(HTTPException) as bad_quantity:
        calculate_price(product_id=prod.product_id, quantity=0, customer_id=None, services=services)
    assert bad_quantity.value.status_code == 400


@pytest.mark.order(5)
def test_cart_discount_and_order_usage_flow(db):
    shoe = _create_test_product(db, regular_price="60", category_ids=["shoes"])
    lace = _create_test_product(db, regular_price="5", category_ids=["accessories"])
    rule = create_rule(
        db,
        DiscountRuleCreate(
            name="10% off shoes over 100",
            discount_type="percentage",
            discount_value="10",
            apply_to="categories",
            items={"category_ids": ["shoes"]},
            conditions=[{"type": "cart_total", "operator": "greater_equal", "value": "100"}],
            usage_limit=1,
            kind={"rule_type": "cart_rule"},
        ),
    )
    services = _services(db)

    small = cart_discounts(
        CartDiscountRequest(cart=_cart_for(db, (shoe, 1), (lace, 1))), services=services
    )
    assert small.adjustments.fees == []
    assert small.session[SESSION_KEY] == []

    response = cart_discounts(
        CartDiscountRequest(cart=_cart_for(db, (shoe, 2), (lace, 2)), pass_id="checkout-1"),
        services=services,
    )
    [fee] = response.adjustments.fees
    assert fee.amount == Decimal("-12.00")
    assert fee.label == "10% off shoes over 100"
    assert response.applied_rule_ids == [rule.id]

    request = RecordUsageRequest(applied_rules=response.session[SESSION_KEY], user_id="buyer_e2e")
    first = record_applied_rules("ORDER_E2E_1", request, services=services)
    second = record_applied_rules("ORDER_E2E_1", request, services=services)

    assert first.recorded_rule_ids == [rule.id]
    assert second.recorded_rule_ids == []
    assert second.skipped_rule_ids == [rule.id]

    saved = db.query(DiscountRule).filter(DiscountRule.id == rule.id).first()
    db.refresh(saved)
    assert saved.usage_count == 1

    # usage limit reached: the rule no longer applies
    after = cart_discounts(
        CartDiscountRequest(cart=_cart_for(db, (shoe, 2))), services=_services(db)
    )
    assert after.adjustments.fees == []


@pytest.mark.order(6)
def test_gift_rule_adds_gift_line(db):
    coffee = _create_test_product(db, regular_price="12", category_ids=["coffee"])
    mug = _create_test_product(db, regular_price="8")
    rule = create_rule(
        db,
        DiscountRuleCreate(
            name="Free mug with coffee",
            apply_to="categories",
            items={"category_ids": ["coffee"]},
            kind={"rule_type": "gift", "gift_products": [{"product_id": mug.product_id}]},
        ),
    )

    response = cart_discounts(
        CartDiscountRequest(cart=_cart_for(db, (coffee, 1))), services=_services(db)
    )

    [gift] = response.adjustments.gift_line_changes.add
    assert gift.rule_id == rule.id
    assert gift.product_id == mug.product_id
    assert gift.original_price == Decimal("8")
    assert gift.unit_price == Decimal("0.00")
