"""
Unit tests for pricing rule validation.
"""
import pytest
from pydantic import ValidationError

from models.pricing import PricingConditions, PricingRule
from pipeline.pricing import validate_rule


@pytest.mark.unit
class TestRuleModel:
    """Tests for validation at rule creation."""

    def test_defaults(self):
        r = PricingRule(id="r")
        assert r.enabled is True
        assert r.markup_type == "percentage"
        assert r.rounding_strategy == "none"
        assert r.psychological_ending == ".99"
        assert r.priority == 10

    def test_accepts_camel_case_record(self):
        """Test that stored camelCase records load."""
        r = PricingRule.model_validate({
            "id": "electronics-premium",
            "name": "Electronics Premium",
            "enabled": True,
            "conditions": {"category": "Electronics", "minPrice": 5},
            "markupType": "percentage",
            "markupValue": 35,
            "roundingStrategy": "psychological",
            "roundingTarget": "cent",
            "psychologicalEnding": ".49",
            "priority": 5,
        })
        assert r.conditions.min_price == 5
        assert r.markup_value == 35
        assert r.psychological_ending == ".49"

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_rejects_non_finite_markup(self, value):
        with pytest.raises(ValidationError):
            PricingRule(id="r", markup_value=value)

    @pytest.mark.parametrize("ending", ["99", "abc", ".", "0.99", ""])
    def test_rejects_malformed_ending(self, ending):
        with pytest.raises(ValidationError):
            PricingRule(id="r", psychological_ending=ending)

    def test_rejects_inverted_price_bounds(self):
        with pytest.raises(ValidationError):
            PricingRule(id="r", conditions=PricingConditions(min_price=50, max_price=10))

    def test_rejects_unknown_markup_type(self):
        with pytest.raises(ValidationError):
            PricingRule(id="r", markup_type="exponential")


@pytest.mark.unit
class TestValidateRule:
    """Tests for validate_rule() on already-built records."""

    def test_valid_rule_has_no_problems(self):
        r = PricingRule(id="r", markup_type="fixed", markup_value=-2,
                        rounding_strategy="nearest", rounding_target="nickel")
        assert validate_rule(r) == []

    def test_reports_nan_markup(self):
        r = PricingRule.model_construct(id="r", markup_value=float("nan"))
        problems = validate_rule(r)
        assert len(problems) == 1
        assert "finite" in problems[0]

    def test_reports_bad_ending(self):
        r = PricingRule.model_construct(id="r", rounding_strategy="psychological",
                                        psychological_ending="99")
        problems = validate_rule(r)
        assert any("ending" in p for p in problems)

    def test_ending_not_checked_for_other_strategies(self):
        r = PricingRule.model_construct(id="r", rounding_strategy="none", psychological_ending="x")
        assert validate_rule(r) == []

    def test_reports_inverted_bounds(self):
        r = PricingRule.model_construct(
            id="r", conditions=PricingConditions(min_price=30, max_price=20),
        )
        problems = validate_rule(r)
        assert any("greater than max price" in p for p in problems)

    def test_reports_unknown_policies(self):
        r = PricingRule.model_construct(id="r", markup_type="bogus", rounding_strategy="sideways")
        problems = validate_rule(r)
        assert any("markup type" in p for p in problems)
        assert any("rounding strategy" in p for p in problems)
