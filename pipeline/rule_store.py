"""
Storage for pricing rules, category mappings and batch settings.

Records live as JSON files in the config directory, in the same camelCase
shape the storefront app uses:

  pricing_rules.json       list of PricingRule
  category_mappings.json   list of CategoryMapping
  bulk_processing.json     BulkProcessingConfig object

A missing file falls back to the built-in defaults.  A file that exists
but cannot be parsed loads as no rules or mappings, never as the defaults.
Entries that fail validation are skipped with a warning; the rest still load.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from models.pricing import CategoryMapping, PricingConditions, PricingRule
from models.settings import BulkProcessingConfig

logger = logging.getLogger(__name__)

RULES_FILE = "pricing_rules.json"
MAPPINGS_FILE = "category_mappings.json"
BULK_CONFIG_FILE = "bulk_processing.json"

# Returned by _read for a file that exists but cannot be parsed
_UNREADABLE = object()


def _psych_rule(rule_id: str, name: str, markup: float, ending: str, priority: int, **conditions) -> PricingRule:
    return PricingRule(
        id=rule_id,
        name=name,
        conditions=PricingConditions(**conditions),
        markup_type="percentage",
        markup_value=markup,
        rounding_strategy="psychological",
        rounding_target="cent",
        psychological_ending=ending,
        priority=priority,
    )


DEFAULT_PRICING_RULES: tuple[PricingRule, ...] = (
    _psych_rule("general-markup", "General Markup", 40, ".99", 10),
    _psych_rule("electronics-premium", "Electronics Premium", 35, ".49", 5, category="Electronics"),
    _psych_rule("low-value-items", "Low Value Items", 60, ".95", 3, max_price=25),
)

# Retail e-commerce preset applied by "quick setup"
QUICK_SETUP_RULES: tuple[PricingRule, ...] = (
    _psych_rule("electronics-premium", "Electronics Premium Strategy", 35, ".99", 1, category="Electronics"),
    _psych_rule("accessories-high-margin", "Accessories High Margin", 60, ".49", 2,
                category="Accessories", max_price=50),
    _psych_rule("bulk-items-competitive", "Bulk Items Competitive", 25, ".95", 3, min_price=100),
    _psych_rule("default-strategy", "Default Retail Strategy", 40, ".99", 10),
)

QUICK_SETUP_BULK_CONFIG = {
    "batch_size": 75,
    "processing_delay": 300,
    "auto_approve_threshold": 90,
    "skip_duplicates": True,
    "update_existing_products": False,
    "create_missing_categories": True,
    "enable_description_generation": True,
    "enable_seo_optimization": True,
}

DEFAULT_CATEGORY_MAPPINGS: tuple[CategoryMapping, ...] = (
    CategoryMapping(supplier_category="Electronics", shopify_category="Electronics", default_markup=35),
    CategoryMapping(supplier_category="Accessories", shopify_category="Accessories", default_markup=50),
    CategoryMapping(supplier_category="Components", shopify_category="Electronics > Components", default_markup=40),
    CategoryMapping(supplier_category="Tools", shopify_category="Tools & Hardware", default_markup=45),
)


class RuleStore:
    """Loads and saves the engine's configuration records."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)

    # ------------------------------------------------------------------
    # Pricing rules
    # ------------------------------------------------------------------

    def load_rules(self) -> list[PricingRule]:
        raw = self._read(RULES_FILE)
        if raw is None:
            return [r.model_copy(deep=True) for r in DEFAULT_PRICING_RULES]
        return self._parse_list(raw, PricingRule, RULES_FILE)

    def save_rules(self, rules: list[PricingRule]) -> None:
        self._write(RULES_FILE, [r.model_dump(mode="json", by_alias=True) for r in rules])

    def upsert_rule(self, rule: PricingRule) -> list[PricingRule]:
        """Replace the rule with the same id, or append it.  Returns the saved list."""
        rules = self.load_rules()
        for i, existing in enumerate(rules):
            if existing.id == rule.id:
                rules[i] = rule
                break
        else:
            rules.append(rule)
        self.save_rules(rules)
        return rules

    def delete_rule(self, rule_id: str) -> bool:
        rules = self.load_rules()
        kept = [r for r in rules if r.id != rule_id]
        if len(kept) == len(rules):
            return False
        self.save_rules(kept)
        return True

    # ------------------------------------------------------------------
    # Category mappings
    # ------------------------------------------------------------------

    def load_category_mappings(self) -> list[CategoryMapping]:
        raw = self._read(MAPPINGS_FILE)
        if raw is None:
            return [m.model_copy() for m in DEFAULT_CATEGORY_MAPPINGS]
        return self._parse_list(raw, CategoryMapping, MAPPINGS_FILE)

    def save_category_mappings(self, mappings: list[CategoryMapping]) -> None:
        self._write(MAPPINGS_FILE, [m.model_dump(mode="json", by_alias=True) for m in mappings])

    # ------------------------------------------------------------------
    # Batch settings
    # ------------------------------------------------------------------

    def load_bulk_config(self) -> BulkProcessingConfig:
        raw = self._read(BULK_CONFIG_FILE)
        if raw is None or raw is _UNREADABLE:
            return BulkProcessingConfig()
        try:
            return BulkProcessingConfig.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Invalid %s (%s), using defaults", BULK_CONFIG_FILE, exc)
            return BulkProcessingConfig()

    def save_bulk_config(self, bulk: BulkProcessingConfig) -> None:
        self._write(BULK_CONFIG_FILE, bulk.model_dump(mode="json", by_alias=True))

    def apply_quick_setup(self) -> list[PricingRule]:
        """Replace the rules with the retail preset and tune the batch settings to match."""
        rules = [r.model_copy(deep=True) for r in QUICK_SETUP_RULES]
        self.save_rules(rules)
        bulk = self.load_bulk_config().model_copy(update=QUICK_SETUP_BULK_CONFIG)
        self.save_bulk_config(bulk)
        logger.info("Quick setup applied: %d rules", len(rules))
        return rules

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _read(self, filename: str):
        path = self.config_dir / filename
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Could not load %s: %s", filename, exc)
            return _UNREADABLE

    def _write(self, filename: str, data) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.config_dir / filename
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        tmp.replace(path)
        logger.info("Saved %s", path)

    @staticmethod
    def _parse_list(raw, model, filename: str) -> list:
        if raw is _UNREADABLE:
            return []
        if not isinstance(raw, list):
            logger.warning("%s must be a JSON array, nothing loaded", filename)
            return []
        items = []
        for i, entry in enumerate(raw):
            try:
                items.append(model.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping invalid entry %d in %s: %s", i, filename, exc)
        return items
