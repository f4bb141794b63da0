from app.services.discount_engine.exclusions import ExclusionRegistry
from app.services.discount_engine.scope import ScopeMatcher
from tests.factories import InMemoryRuleRepository, make_product, make_rule


def category_rule(rule_id=1, exclusions=()):
    return make_rule(
        id=rule_id,
        discount_value="10",
        apply_to="categories",
        items={"category_ids": ["shoes"]},
        exclusions=list(exclusions),
    )


def test_sole_excluded_category_blocks_category_scope(settings):
    rule = category_rule(exclusions=[{"type": "category", "id": "shoes"}])
    registry = ExclusionRegistry(InMemoryRuleRepository([rule]))
    scope = ScopeMatcher(registry, settings)
    boot = make_product("BOOT", category_ids=["shoes"])

    assert registry.is_product_excluded(boot, rule.id) is True
    assert scope.applies_to_product(rule, boot) is False


def test_direct_and_parent_product_exclusion():
    rule = category_rule(exclusions=[{"type": "product", "id": "BOOT"}])
    registry = ExclusionRegistry(InMemoryRuleRepository([rule]))

    assert registry.is_product_excluded(make_product("BOOT", category_ids=["shoes"]), rule.id)
    variant = make_product("BOOT-42", parent_id="BOOT", category_ids=["shoes"])
    assert registry.is_product_excluded(variant, rule.id)
    assert not registry.is_product_excluded(make_product("SANDAL", category_ids=["shoes"]), rule.id)


def test_exclusions_are_per_rule():
    excluding = category_rule(1, exclusions=[{"type": "category", "id": "shoes"}])
    other = category_rule(2)
    registry = ExclusionRegistry(InMemoryRuleRepository([excluding, other]))
    boot = make_product("BOOT", category_ids=["shoes"])

    assert registry.is_product_excluded(boot, 1) is True
    assert registry.is_product_excluded(boot, 2) is False


def test_global_flag_blocks_every_rule(settings):
    rule = make_rule(discount_value="10")
    registry = ExclusionRegistry(InMemoryRuleRepository([rule]))
    scope = ScopeMatcher(registry, settings)
    product = make_product("GIFTCARD", exclude_from_discounts=True)

    assert registry.is_globally_excluded(product) is True
    assert scope.applies_to_product(rule, product) is False


def test_results_are_cached_until_invalidated():
    repository = InMemoryRuleRepository([category_rule(1)])
    registry = ExclusionRegistry(repository)
    boot = make_product("BOOT", category_ids=["shoes"])
    assert registry.is_product_excluded(boot, 1) is False

    repository.rules = [category_rule(1, exclusions=[{"type": "product", "id": "BOOT"}])]
    assert registry.is_product_excluded(boot, 1) is False

    registry.invalidate_rule(1)
    assert registry.is_product_excluded(boot, 1) is True

    repository.rules = [category_rule(1)]
    registry.clear()
    assert registry.is_product_excluded(boot, 1) is False


def test_invalidate_product_only_drops_that_product():
    registry = ExclusionRegistry(InMemoryRuleRepository([category_rule(1)]))
    boot = make_product("BOOT", category_ids=["shoes"])
    sandal = make_product("SANDAL", category_ids=["shoes"])
    registry.is_product_excluded(boot, 1)
    registry.is_product_excluded(sandal, 1)

    registry.invalidate_product("BOOT")

    assert ("BOOT", 1) not in registry._results
    assert ("SANDAL", 1) in registry._results


def test_lookup_failure_makes_rule_inapplicable(settings):
    repository = InMemoryRuleRepository([make_rule(id=9, discount_value="10")])
    repository.fail = True
    scope = ScopeMatcher(ExclusionRegistry(repository), settings)

    assert scope.applies_to_product(repository.rules[0], make_product()) is False


def test_scope_kinds(settings):
    registry = ExclusionRegistry(InMemoryRuleRepository())
    scope = ScopeMatcher(registry, settings)
    variant = make_product("TEE-M", parent_id="TEE", tag_ids=["summer"], category_ids=["tops"])

    assert scope.applies_to_product(make_rule(discount_value="1"), variant)
    assert scope.applies_to_product(
        make_rule(discount_value="1", apply_to="specific_products", items={"product_ids": ["TEE"]}),
        variant,
    )
    assert scope.applies_to_product(
        make_rule(discount_value="1", apply_to="tags", items={"tag_ids": ["summer"]}), variant
    )
    assert not scope.applies_to_product(
        make_rule(discount_value="1", apply_to="categories", items={"category_ids": ["shoes"]}),
        variant,
    )
    assert not scope.applies_to_product(make_rule(discount_value="1", apply_to="brands"), variant)
