from decimal import Decimal

import pytest

from app.services.discount_engine.promotion_engine import PromotionEngine
from tests.factories import make_cart, make_line, make_product, make_rule


@pytest.fixture()
def engine(repository, conditions, exclusions, settings):
    return PromotionEngine(repository, conditions, exclusions, settings=settings)


def offer(offer_type=None, discount_value="100", params=None, **fields):
    conditions = []
    if offer_type:
        conditions.append({"type": "offer_type", "operator": "equals", "value": offer_type})
    for name, value in (params or {}).items():
        conditions.append({"type": name, "operator": "equals", "value": value})
    return make_rule("special_offer", discount_value=discount_value, conditions=conditions, **fields)


def single_line_cart(quantity, price="10"):
    return make_cart(make_line(make_product("SOCK", price), quantity, key="sock"))


def test_bogo_three_units_one_free(engine, repository):
    repository.rules = [offer("bogo")]

    [result] = engine.apply_offers(single_line_cart(3))

    assert result.discount == Decimal("10.00")
    assert result.new_unit_price == Decimal("6.67")
    assert result.offer_type == "bogo"


def test_bogo_is_the_default_kind(engine, repository):
    repository.rules = [offer(discount_value="50")]

    [result] = engine.apply_offers(single_line_cart(4))

    assert result.offer_type == "bogo"
    assert result.discount == Decimal("10.00")


def test_own_special_offer_type_used_when_no_offer_condition(engine, repository):
    repository.rules = [
        offer(params={"get_quantity": 3, "pay_quantity": 2}, kind={"special_offer_type": "x_for_price_of_y"})
    ]
    [result] = engine.apply_offers(single_line_cart(3))
    assert result.offer_type == "x_for_price_of_y"


def test_buy_x_get_y(engine, repository):
    repository.rules = [
        offer("buy_x_get_y", params={"buy_quantity": 2, "get_quantity": 1, "get_discount": 50})
    ]
    [result] = engine.apply_offers(single_line_cart(6))
    assert result.discount == Decimal("10.00")
    assert result.new_unit_price == Decimal("8.33")


def test_buy_x_for_y(engine, repository):
    repository.rules = [offer("buy_x_for_y", params={"buy_quantity": 3, "fixed_price": 25})]
    [result] = engine.apply_offers(single_line_cart(7))
    assert result.discount == Decimal("10.00")


def test_buy_x_for_y_never_negative(engine, repository):
    repository.rules = [offer("buy_x_for_y", params={"buy_quantity": 3, "fixed_price": 50})]
    [result] = engine.apply_offers(single_line_cart(3))
    assert result.discount == Decimal("0.00")
    assert result.new_unit_price == Decimal("10.00")


def test_x_for_price_of_y(engine, repository):
    repository.rules = [offer("x_for_price_of_y", params={"get_quantity": 3, "pay_quantity": 2})]
    [result] = engine.apply_offers(single_line_cart(6))
    assert result.discount == Decimal("20.00")
    assert result.new_unit_price == Decimal("6.67")


def test_no_offer_below_one_full_set(engine, repository):
    repository.rules = [
        offer("buy_x_get_y", params={"buy_quantity": 2, "get_quantity": 1}),
    ]
    assert engine.apply_offers(single_line_cart(2)) == []


def test_later_rule_wins_on_the_same_line(engine, repository):
    early = offer("bogo", priority=1)
    late = offer("x_for_price_of_y", priority=2, params={"get_quantity": 3, "pay_quantity": 2})
    repository.rules = [late, early]

    [result] = engine.apply_offers(single_line_cart(6))

    assert result.rule_id == late.id
    assert result.discount == Decimal("20.00")


def test_unknown_offer_type_contributes_nothing(engine, repository):
    broken = offer("mystery_deal", priority=1)
    fine = offer("bogo", priority=2)
    repository.rules = [broken, fine]

    [result] = engine.apply_offers(single_line_cart(2))
    assert result.rule_id == fine.id


def test_unknown_own_special_offer_type_contributes_nothing(engine, repository):
    repository.rules = [offer(kind={"special_offer_type": "mystery"})]

    assert engine.apply_offers(single_line_cart(2)) == []


def test_zero_set_size_is_a_configuration_error(engine, repository):
    repository.rules = [offer("buy_x_for_y", params={"buy_quantity": 0})]
    assert engine.apply_offers(single_line_cart(5)) == []


def test_event_sales_and_gift_lines_are_ignored(engine, repository):
    repository.rules = [
        make_rule(
            "special_offer",
            discount_value="100",
            kind={"special_offer_type": "event_sale", "event_discount_value": "10"},
        )
    ]
    assert engine.apply_offers(single_line_cart(4)) == []

    repository.rules = [offer("bogo")]
    gift = make_line(make_product("FREEBIE", "5"), 2, key="gift", is_gift=True, gift_rule_id=99)
    cart = make_cart(gift)
    assert engine.apply_offers(cart) == []


def test_scope_and_exclusions_limit_lines(engine, repository):
    repository.rules = [
        offer(
            "bogo",
            apply_to="categories",
            items={"category_ids": ["socks"]},
            exclusions=[{"type": "product", "id": "WOOL"}],
        )
    ]
    cotton = make_line(make_product("COTTON", "8", category_ids=["socks"]), 2, key="cotton")
    wool = make_line(make_product("WOOL", "12", category_ids=["socks"]), 2, key="wool")
    hat = make_line(make_product("HAT", "20", category_ids=["hats"]), 2, key="hat")

    results = engine.apply_offers(make_cart(cotton, wool, hat))

    assert [r.line_key for r in results] == ["cotton"]


def test_bogo_value_comes_from_matching_tier(engine, repository):
    repository.rules = [
        offer(
            "bogo",
            discount_value="100",
            quantity_tiers=[
                {"min_quantity": 2, "max_quantity": 3, "discount_type": "percentage", "discount_value": "50"},
            ],
        )
    ]
    [small] = engine.apply_offers(single_line_cart(2))
    [large] = engine.apply_offers(single_line_cart(4))

    assert small.discount == Decimal("5.00")
    assert large.discount == Decimal("20.00")
