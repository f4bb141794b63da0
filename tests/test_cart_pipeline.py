from decimal import Decimal

import pytest

from app.dependencies.discounts import DiscountServices
from app.services.discount_engine.cart_engine import CartEngine
from app.services.discount_engine.cart_pipeline import SESSION_KEY, CartDiscountPipeline
from app.services.discount_engine.gift_resolver import GiftResolver
from app.services.discount_engine.guards import PassGuard
from app.services.discount_engine.promotion_engine import PromotionEngine
from tests.factories import DictCatalog, make_cart, make_line, make_product, make_rule

MUG = make_product("MUG", "10")
COASTER = make_product("COASTER", "4")


@pytest.fixture()
def pipeline(repository, conditions, exclusions, settings):
    cart_engine = CartEngine(repository, conditions, exclusions, settings=settings)
    return CartDiscountPipeline(
        cart_engine,
        PromotionEngine(repository, conditions, exclusions, settings=settings),
        GiftResolver(repository, conditions, exclusions, DictCatalog(COASTER), settings=settings),
        exclusions,
    )


@pytest.fixture()
def rules(repository):
    repository.rules = [
        make_rule("cart_rule", name="Five off", discount_type="fixed", discount_value="5"),
        make_rule(
            "special_offer",
            discount_value="100",
            conditions=[{"type": "offer_type", "operator": "equals", "value": "bogo"}],
        ),
        make_rule("gift", discount_value="0", kind={"gift_products": [{"product_id": "COASTER"}]}),
    ]
    return repository.rules


def test_runs_all_three_stages(pipeline, rules):
    adjustments = pipeline.recalculate(make_cart(make_line(MUG, 2, key="mug")))

    assert [f.amount for f in adjustments.fees] == [Decimal("-5.00")]
    assert [o.line_key for o in adjustments.line_price_overrides] == ["mug"]
    assert [g.product_id for g in adjustments.gift_line_changes.add] == ["COASTER"]
    assert adjustments.applied_rule_ids == [rules[0].id]


def test_same_pass_is_calculated_once(pipeline, rules, repository):
    cart = make_cart(make_line(MUG, 2, key="mug"))
    first = pipeline.recalculate(cart, pass_id="req-1")

    repository.rules = []
    again = pipeline.recalculate(cart, pass_id="req-1")
    fresh = pipeline.recalculate(cart, pass_id="req-2")

    assert again is first
    assert fresh.fees == []


def test_session_carries_rules_to_order_completion(pipeline, rules):
    session = {}
    pipeline.recalculate(make_cart(make_line(MUG, 1, key="mug")), session=session)

    assert [a.rule_id for a in session[SESSION_KEY]] == [rules[0].id]

    assert pipeline.complete_order("order-77", session) == [rules[0].id]
    assert SESSION_KEY not in session
    assert rules[0].usage_count == 1

    # checkout callback fired twice
    session[SESSION_KEY] = [rules[0].id]
    assert pipeline.complete_order("order-77", session) == []
    assert rules[0].usage_count == 1


def test_complete_order_without_session(pipeline):
    assert pipeline.complete_order("order-1", None) == []


def test_pass_guard_forgets_oldest_passes():
    passes = PassGuard(max_passes=2)
    passes.store("a", 1)
    passes.store("b", 2)
    passes.store("c", 3)

    assert passes.get("a") is None
    assert passes.get("b") == 2
    assert passes.get("c") == 3


def test_same_pass_id_with_a_different_cart_is_recalculated(pipeline, repository):
    repository.rules = [make_rule("cart_rule", discount_type="percentage", discount_value="10")]

    small = pipeline.recalculate(make_cart(make_line(MUG, 1, key="mug")), pass_id="1")
    large = pipeline.recalculate(make_cart(make_line(MUG, 50, key="mug")), pass_id="1")

    assert [f.amount for f in small.fees] == [Decimal("-1.00")]
    assert [f.amount for f in large.fees] == [Decimal("-50.00")]


def test_repeated_pass_still_fills_the_session(pipeline, rules):
    cart = make_cart(make_line(MUG, 1, key="mug"))
    pipeline.recalculate(cart, pass_id="p", session={})

    session = {}
    pipeline.recalculate(cart, pass_id="p", session=session)

    assert [a.rule_id for a in session[SESSION_KEY]] == [rules[0].id]
    assert pipeline.complete_order("order-9", session) == [rules[0].id]


def test_each_request_gets_its_own_passes(db):
    first = DiscountServices(db)
    second = DiscountServices(db)

    assert first.pipeline.passes is not second.pipeline.passes
