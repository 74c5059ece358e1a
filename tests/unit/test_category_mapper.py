"""
Unit tests for category mapping lookup.
"""
import pytest

from models.pricing import CategoryMapping
from pipeline.category_mapper import CategoryMapper
from pipeline.rule_store import DEFAULT_CATEGORY_MAPPINGS


@pytest.fixture
def mapper() -> CategoryMapper:
    return CategoryMapper(DEFAULT_CATEGORY_MAPPINGS)


@pytest.mark.unit
class TestCategoryMapper:
    """Tests for CategoryMapper class."""

    def test_exact_match_is_case_insensitive(self, mapper):
        m = mapper.lookup("  tools ")
        assert m is not None
        assert m.shopify_category == "Tools & Hardware"

    def test_fuzzy_match(self, mapper):
        """Test that a near-miss label still finds its mapping."""
        m = mapper.lookup("Electronic")
        assert m is not None
        assert m.supplier_category == "Electronics"

    def test_unrelated_category_not_matched(self, mapper):
        assert mapper.lookup("Garden Furniture") is None

    def test_empty_name_not_matched(self, mapper):
        assert mapper.lookup("") is None
        assert mapper.lookup(None) is None

    def test_disabled_mappings_are_skipped(self):
        mapper = CategoryMapper([
            CategoryMapping(supplier_category="Toys", shopify_category="Kids", enabled=False),
        ])
        assert mapper.lookup("Toys") is None

    def test_threshold_is_configurable(self):
        mapper = CategoryMapper(DEFAULT_CATEGORY_MAPPINGS, fuzzy_threshold=100)
        assert mapper.lookup("Electronic") is None

    def test_suggest_rule_uses_mapping_markup(self, mapper):
        """Test the starter rule targets the store category with the default markup."""
        r = mapper.suggest_rule("Components")

        assert r.id == "category-electronics-components"
        assert r.conditions.category == "Electronics > Components"
        assert r.markup_type == "percentage"
        assert r.markup_value == 40
        assert r.rounding_strategy == "psychological"
        assert r.priority == 5

    def test_suggest_rule_for_unknown_category(self, mapper):
        assert mapper.suggest_rule("Garden Furniture") is None
