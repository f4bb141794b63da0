import logging
from typing import Dict, FrozenSet, Tuple

from app.enums.discounts import ExclusionType
from app.schemas.product import ProductRef

logger = logging.getLogger(__name__)


class ExclusionRegistry:
    """
    Product / category opt-outs.

    Per-rule exclusions come from the rule repository; the global opt-out is
    the product's own ``exclude_from_discounts`` flag. Answers are cached per
    ``(product_id, rule_id)`` until ``clear()`` is called, which the cart
    pipeline does at the start of every pass.
    """

    def __init__(self, repository):
        self.repository = repository
        self._results: Dict[Tuple[str, int], bool] = {}
        self._rule_exclusions: Dict[int, Tuple[FrozenSet[str], FrozenSet[str]]] = {}

    def is_globally_excluded(self, product: ProductRef) -> bool:
        return bool(product.exclude_from_discounts)

    def is_product_excluded(self, product: ProductRef, rule_id: int) -> bool:
        key = (product.product_id, rule_id)
        if key in self._results:
            return self._results[key]

        product_ids, category_ids = self._exclusions_for(rule_id)
        excluded = (
            product.product_id in product_ids
            or (product.parent_id is not None and product.parent_id in product_ids)
            or any(category in category_ids for category in product.category_ids)
        )
        self._results[key] = excluded
        if excluded:
            logger.debug("Product %s excluded from rule %s", product.product_id, rule_id)
        return excluded

    def _exclusions_for(self, rule_id: int) -> Tuple[FrozenSet[str], FrozenSet[str]]:
        if rule_id not in self._rule_exclusions:
            # DataAccessError propagates; callers treat the rule as not applicable
            exclusions = self.repository.get_exclusions(rule_id)
            product_ids = frozenset(
                e.id for e in exclusions if e.type == ExclusionType.product
            )
            category_ids = frozenset(
                e.id for e in exclusions if e.type == ExclusionType.category
            )
            self._rule_exclusions[rule_id] = (product_ids, category_ids)
        return self._rule_exclusions[rule_id]

    # ---------- invalidation ----------

    def clear(self) -> None:
        self._results.clear()
        self._rule_exclusions.clear()

    def invalidate_product(self, product_id: str) -> None:
        for key in [k for k in self._results if k[0] == product_id]:
            del self._results[key]

    def invalidate_rule(self, rule_id: int) -> None:
        self._rule_exclusions.pop(rule_id, None)
        for key in [k for k in self._results if k[1] == rule_id]:
            del self._results[key]
