"""
Category mapping lookup.

Translates a supplier's category label into the store category using the
operator-maintained CategoryMapping table, and suggests a starting rule for
new categories.  Strategies, in priority order:
  1. Exact match (case-insensitive)
  2. Fuzzy match (using rapidfuzz)

Disabled mappings are never returned.
"""
import logging
from typing import Iterable, Optional

from rapidfuzz import fuzz

from models.pricing import CategoryMapping, MarkupType, PricingConditions, PricingRule, RoundingStrategy

logger = logging.getLogger(__name__)

# Minimum fuzzy score (0-100) to accept a category match
FUZZY_THRESHOLD = 85


class CategoryMapper:
    """Static lookup over a list of CategoryMapping records."""

    def __init__(self, mappings: Iterable[CategoryMapping], fuzzy_threshold: int = FUZZY_THRESHOLD):
        self.mappings: list[CategoryMapping] = [m for m in mappings if m.enabled]
        self.fuzzy_threshold = fuzzy_threshold

    def lookup(self, supplier_category: Optional[str]) -> Optional[CategoryMapping]:
        """Return the mapping for *supplier_category*, or None if nothing is close enough."""
        name = (supplier_category or "").strip().lower()
        if not name or not self.mappings:
            return None

        for m in self.mappings:
            if m.supplier_category.strip().lower() == name:
                return m

        best_score = 0.0
        best: Optional[CategoryMapping] = None
        for m in self.mappings:
            score = fuzz.token_sort_ratio(name, m.supplier_category.lower())
            if score > best_score:
                best_score = score
                best = m

        if best and best_score >= self.fuzzy_threshold:
            logger.info(
                "Category fuzzy matched: '%s' -> '%s' (score=%d)",
                supplier_category, best.supplier_category, best_score,
            )
            return best

        logger.debug("No category mapping for %r (best score %d)", supplier_category, best_score)
        return None

    def suggest_rule(self, supplier_category: str, priority: int = 5) -> Optional[PricingRule]:
        """
        Build a starter percentage rule for a mapped category, pre-seeded
        with the mapping's target category and default markup.
        """
        mapping = self.lookup(supplier_category)
        if mapping is None:
            return None
        slug = mapping.shopify_category.lower().replace(" ", "-").replace(">", "").replace("--", "-")
        return PricingRule(
            id=f"category-{slug}",
            name=f"{mapping.shopify_category} Markup",
            conditions=PricingConditions(category=mapping.shopify_category),
            markup_type=MarkupType.PERCENTAGE,
            markup_value=mapping.default_markup,
            rounding_strategy=RoundingStrategy.PSYCHOLOGICAL,
            psychological_ending=".99",
            priority=priority,
        )
