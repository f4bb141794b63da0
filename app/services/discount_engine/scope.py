import logging

from app.enums.discounts import ApplyTo
from app.schemas.discount_rule import DiscountRuleSchema
from app.schemas.product import ProductRef
from app.services.discount_engine.errors import DiscountEngineError
from app.services.discount_engine.exclusions import ExclusionRegistry

logger = logging.getLogger(__name__)


def matches_apply_to(rule: DiscountRuleSchema, product: ProductRef) -> bool:
    apply_to = rule.apply_to
    if apply_to == ApplyTo.all_products.value:
        return True

    if apply_to == ApplyTo.specific_products.value:
        ids = rule.items.product_ids
        return product.product_id in ids or (
            product.parent_id is not None and product.parent_id in ids
        )

    if apply_to == ApplyTo.categories.value:
        return any(c in rule.items.category_ids for c in product.category_ids)

    if apply_to == ApplyTo.tags.value:
        return any(t in rule.items.tag_ids for t in product.tag_ids)

    return False


class ScopeMatcher:
    """Decides whether a rule may touch a product at all."""

    def __init__(self, exclusions: ExclusionRegistry, settings):
        self.exclusions = exclusions
        self.settings = settings

    def applies_to_product(self, rule: DiscountRuleSchema, product: ProductRef) -> bool:
        try:
            if self.exclusions.is_globally_excluded(product):
                return False
            if self.exclusions.is_product_excluded(product, rule.id):
                return False
        except DiscountEngineError as exc:
            logger.warning(
                "Exclusion lookup failed for rule %s, product %s: %s",
                rule.id, product.product_id, exc,
            )
            return False

        if product.is_on_sale and not self.settings.APPLY_TO_SALE_PRODUCTS:
            return False

        return matches_apply_to(rule, product)
