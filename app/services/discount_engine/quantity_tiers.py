from app.schemas.discount_rule import DiscountRuleSchema
from app.services.discount_engine.discounts import DiscountSpec


class QuantityTierResolver:
    """Picks the discount formula a rule uses for a given quantity."""

    def resolve(self, rule: DiscountRuleSchema, quantity: int) -> DiscountSpec:
        tiers = sorted(rule.quantity_tiers, key=lambda tier: tier.min_quantity)
        for tier in tiers:
            if quantity < tier.min_quantity:
                continue
            if tier.max_quantity is not None and quantity > tier.max_quantity:
                continue
            return DiscountSpec(tier.discount_type, tier.discount_value)

        # no band matched: the rule's own fields, never layered with a tier
        return DiscountSpec(rule.discount_type, rule.discount_value)

    @staticmethod
    def has_tiers(rule: DiscountRuleSchema) -> bool:
        return bool(rule.quantity_tiers)
