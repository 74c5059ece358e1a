"""
Rule-based sell price calculation.

Given a line cost and optional category / supplier / SKU context, the
engine picks the single applicable pricing rule with the lowest priority
value and applies its markup and rounding policies:

  1. Drop disabled rules.
  2. Keep rules whose conditions all hold (absent conditions always hold;
     min/max price bounds are inclusive; strings match exactly).
  3. No rule left -> the base price comes back unchanged.
  4. Stable sort by priority; the first rule wins ties.
  5. Markup:   percentage | fixed | tiered
  6. Rounding: none | up | down | nearest (to cent/nickel/dime/dollar)
               | psychological (whole dollars + fixed ending, e.g. .99)

Evaluation never raises.  Malformed rules (NaN markup, unparsable ending)
yield NaN; validate_rule() is the separate pass that catches those before
they are saved.
"""
from __future__ import annotations

import logging
import math
from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from typing import Callable, Iterable, Optional

from models.pricing import (
    MarkupType,
    PricedItem,
    PricingRule,
    RoundingStrategy,
    RoundingTarget,
)
from models.purchase_order import ParsedPurchaseOrder

logger = logging.getLogger(__name__)

# Tiered markup bands: (upper bound exclusive, multiplier), checked in order.
# These are fixed business rules, not derived from markup_value.
TIERED_BANDS: tuple[tuple[float, float], ...] = (
    (20.0, 1.6),
    (100.0, 1.4),
)
TIERED_TOP_MULTIPLIER = 1.3           # base price >= 100

ROUNDING_UNITS: dict[RoundingTarget, Decimal] = {
    RoundingTarget.CENT:   Decimal("0.01"),
    RoundingTarget.NICKEL: Decimal("0.05"),
    RoundingTarget.DIME:   Decimal("0.10"),
    RoundingTarget.DOLLAR: Decimal("1"),
}


# ---------------------------------------------------------------------------
# Rule selection
# ---------------------------------------------------------------------------

def _conditions_hold(
    rule: PricingRule,
    base_price: float,
    category: Optional[str],
    supplier: Optional[str],
    sku: Optional[str],
) -> bool:
    cond = rule.conditions
    if cond is None:
        return True
    if cond.min_price is not None and base_price < cond.min_price:
        return False
    if cond.max_price is not None and base_price > cond.max_price:
        return False
    # Empty strings count as "not set", the same as None
    if cond.category and category != cond.category:
        return False
    if cond.supplier and supplier != cond.supplier:
        return False
    if cond.sku and sku != cond.sku:
        return False
    return True


def applicable_rules(
    base_price: float,
    category: Optional[str] = None,
    supplier: Optional[str] = None,
    sku: Optional[str] = None,
    rules: Iterable[PricingRule] = (),
) -> list[PricingRule]:
    """Return enabled rules whose conditions hold, best (lowest priority) first."""
    matched = [
        r for r in rules
        if r.enabled and _conditions_hold(r, base_price, category, supplier, sku)
    ]
    # sorted() is stable, so equal priorities keep their input order
    return sorted(matched, key=lambda r: r.priority)


def select_rule(
    base_price: float,
    category: Optional[str] = None,
    supplier: Optional[str] = None,
    sku: Optional[str] = None,
    rules: Iterable[PricingRule] = (),
) -> Optional[PricingRule]:
    """Return the single winning rule, or None if nothing applies."""
    ranked = applicable_rules(base_price, category, supplier, sku, rules)
    return ranked[0] if ranked else None


# ---------------------------------------------------------------------------
# Markup policies
# ---------------------------------------------------------------------------

def _percentage_markup(price: float, rule: PricingRule) -> float:
    return price * (1 + rule.markup_value / 100)


def _fixed_markup(price: float, rule: PricingRule) -> float:
    return price + rule.markup_value


def _tiered_markup(price: float, rule: PricingRule) -> float:
    for upper, multiplier in TIERED_BANDS:
        if price < upper:
            return price * multiplier
    return price * TIERED_TOP_MULTIPLIER


_MARKUPS: dict[MarkupType, Callable[[float, PricingRule], float]] = {
    MarkupType.PERCENTAGE: _percentage_markup,
    MarkupType.FIXED:      _fixed_markup,
    MarkupType.TIERED:     _tiered_markup,
}


def apply_markup(price: float, rule: PricingRule) -> float:
    """Apply the rule's markup policy.  An unknown markup type leaves the price as-is."""
    handler = _MARKUPS.get(rule.markup_type)
    if handler is None:
        logger.debug("Rule %s has unknown markup type %r", rule.id, rule.markup_type)
        return price
    return handler(price, rule)


# ---------------------------------------------------------------------------
# Rounding policies
# ---------------------------------------------------------------------------

def _round_to_unit(price: float, target: RoundingTarget, mode: str) -> float:
    unit = ROUNDING_UNITS.get(target)
    if unit is None:
        return price
    # repr() gives the shortest decimal that round-trips, so 1.1 stays 1.1
    # instead of 1.100000000000000088817...
    value = Decimal(repr(price))
    units = (value / unit).to_integral_value(rounding=mode)
    return float(units * unit)


def _round_none(price: float, rule: PricingRule) -> float:
    return price


def _round_up(price: float, rule: PricingRule) -> float:
    return _round_to_unit(price, rule.rounding_target, ROUND_CEILING)


def _round_down(price: float, rule: PricingRule) -> float:
    return _round_to_unit(price, rule.rounding_target, ROUND_FLOOR)


def _round_nearest(price: float, rule: PricingRule) -> float:
    return _round_to_unit(price, rule.rounding_target, ROUND_HALF_UP)


def _round_psychological(price: float, rule: PricingRule) -> float:
    # Whole dollars plus the ending read as "0" + ending, e.g. 24 + 0.99.
    # The rounding target is ignored for this strategy.
    if not math.isfinite(price):
        return price
    try:
        ending = Decimal("0" + str(rule.psychological_ending))
    except InvalidOperation:
        return float("nan")
    return float(Decimal(math.floor(price)) + ending)


_ROUNDERS: dict[RoundingStrategy, Callable[[float, PricingRule], float]] = {
    RoundingStrategy.NONE:          _round_none,
    RoundingStrategy.UP:            _round_up,
    RoundingStrategy.DOWN:          _round_down,
    RoundingStrategy.NEAREST:       _round_nearest,
    RoundingStrategy.PSYCHOLOGICAL: _round_psychological,
}


def apply_rounding(price: float, rule: PricingRule) -> float:
    """Apply the rule's rounding policy to an already marked-up price."""
    handler = _ROUNDERS.get(rule.rounding_strategy)
    if handler is None:
        logger.debug("Rule %s has unknown rounding strategy %r", rule.id, rule.rounding_strategy)
        return price
    return handler(price, rule)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def calculate_price(
    base_price: float,
    category: Optional[str] = None,
    supplier: Optional[str] = None,
    sku: Optional[str] = None,
    rules: Iterable[PricingRule] = (),
) -> float:
    """
    Return the sell price for *base_price* under the highest-precedence
    applicable rule, or *base_price* unchanged when no rule applies.
    """
    rule = select_rule(base_price, category, supplier, sku, rules)
    if rule is None:
        return base_price
    final = apply_rounding(apply_markup(base_price, rule), rule)
    logger.debug("Rule %s priced %s -> %s", rule.id, base_price, final)
    return final


def price_order(
    order: ParsedPurchaseOrder,
    rules: Iterable[PricingRule],
    category_mapper=None,
) -> list[PricedItem]:
    """
    Price every line of a parsed order.

    The order's supplier and each item's SKU and category form the rule
    context.  With a CategoryMapper, supplier categories are translated to
    store categories first; unmapped categories pass through unchanged.
    """
    rules = list(rules)
    priced: list[PricedItem] = []
    for item in order.items:
        category = item.category
        if category_mapper is not None and category:
            mapping = category_mapper.lookup(category)
            if mapping is not None:
                category = mapping.shopify_category
        rule = select_rule(item.price, category, order.supplier, item.sku, rules)
        sell = item.price if rule is None else apply_rounding(apply_markup(item.price, rule), rule)
        priced.append(PricedItem(
            sku=item.sku,
            name=item.name,
            quantity=item.quantity,
            cost_price=item.price,
            sell_price=sell,
            category=category,
            rule_id=rule.id if rule else None,
        ))
    return priced


def validate_rule(rule: PricingRule) -> list[str]:
    """
    Return human-readable problems with *rule* (empty list = valid).

    Meant for records that bypassed model validation, such as rules loaded
    with model_construct() or edited in place.
    """
    problems: list[str] = []
    value = rule.markup_value
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        problems.append(f"markup value {value!r} is not a finite number")
    if rule.markup_type not in _MARKUPS:
        problems.append(f"unknown markup type {rule.markup_type!r}")
    if rule.rounding_strategy not in _ROUNDERS:
        problems.append(f"unknown rounding strategy {rule.rounding_strategy!r}")
    elif rule.rounding_strategy in (
        RoundingStrategy.UP, RoundingStrategy.DOWN, RoundingStrategy.NEAREST,
    ) and rule.rounding_target not in ROUNDING_UNITS:
        problems.append(f"unknown rounding target {rule.rounding_target!r}")
    if rule.rounding_strategy == RoundingStrategy.PSYCHOLOGICAL:
        ending = rule.psychological_ending
        if math.isnan(_round_psychological(0.0, rule)) or not str(ending).startswith("."):
            problems.append(f"psychological ending {ending!r} must look like '.99'")
    cond = rule.conditions
    if cond is not None and cond.min_price is not None and cond.max_price is not None:
        if cond.min_price > cond.max_price:
            problems.append(
                f"min price {cond.min_price} is greater than max price {cond.max_price}"
            )
    return problems
