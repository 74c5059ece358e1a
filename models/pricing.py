import math
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Psychological endings are stored as the fractional part only, e.g. ".99"
_ENDING_RE = re.compile(r"^\.\d+$")


class MarkupType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    TIERED = "tiered"


class RoundingStrategy(str, Enum):
    NONE = "none"
    UP = "up"
    DOWN = "down"
    NEAREST = "nearest"
    PSYCHOLOGICAL = "psychological"


class RoundingTarget(str, Enum):
    CENT = "cent"
    NICKEL = "nickel"
    DIME = "dime"
    DOLLAR = "dollar"


class PricingConditions(BaseModel):
    """
    Optional predicates a rule imposes on the pricing context.
    A field left as None places no constraint on the context.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    min_price: Optional[float] = None     # inclusive
    max_price: Optional[float] = None     # inclusive
    category: Optional[str] = None        # exact match
    supplier: Optional[str] = None        # exact match
    sku: Optional[str] = None             # exact match


class PricingRule(BaseModel):
    """
    A conditional markup + rounding rule.

    Lower priority values take precedence.  Construction validates the
    markup value and the psychological ending; records built with
    model_construct() skip that and are evaluated as-is.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    enabled: bool = True
    conditions: PricingConditions = Field(default_factory=PricingConditions)
    markup_type: MarkupType = MarkupType.PERCENTAGE
    markup_value: float = 0.0
    rounding_strategy: RoundingStrategy = RoundingStrategy.NONE
    rounding_target: RoundingTarget = RoundingTarget.CENT
    psychological_ending: str = ".99"
    priority: int = 10

    @field_validator("markup_value")
    @classmethod
    def _finite_markup(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("markup value must be a finite number")
        return value

    @field_validator("psychological_ending")
    @classmethod
    def _ending_format(cls, value: str) -> str:
        if not _ENDING_RE.match(value):
            raise ValueError(f"psychological ending {value!r} must look like '.99'")
        return value

    @model_validator(mode="after")
    def _price_bounds(self) -> "PricingRule":
        lo, hi = self.conditions.min_price, self.conditions.max_price
        if lo is not None and hi is not None and lo > hi:
            raise ValueError(f"min price {lo} is greater than max price {hi}")
        return self


class CategoryMapping(BaseModel):
    """Supplier category → store category, with a suggested default markup (%)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    supplier_category: str
    shopify_category: str
    default_markup: float = Field(default=40.0, ge=0)
    enabled: bool = True


class PricedItem(BaseModel):
    """One parsed line item with the sell price the rule engine produced."""
    sku: str
    name: str
    quantity: float
    cost_price: float
    sell_price: float
    category: Optional[str] = None
    rule_id: Optional[str] = None         # None when no rule applied
