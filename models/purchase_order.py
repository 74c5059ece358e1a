from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List


class ParsedItem(BaseModel):
    """A single line item as read from an uploaded purchase order."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    sku: str
    name: str
    quantity: float
    price: float                          # unit cost on the supplier PO
    confidence: float = 100.0             # extraction confidence, 0-100
    category: Optional[str] = None        # supplier category, if the file carries one


class ParsedPurchaseOrder(BaseModel):
    """
    Structured purchase order produced once per job by an extractor.
    Immutable after creation; totals are stored as extracted.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    supplier: str
    po_number: str
    date: str
    items: List[ParsedItem] = Field(default_factory=list)
    total_items: float = 0
    total_value: float = 0.0
    average_confidence: float = 0.0

    @classmethod
    def from_items(
        cls,
        supplier: str,
        po_number: str,
        date: str,
        items: List[ParsedItem],
    ) -> "ParsedPurchaseOrder":
        """Build an order and derive its totals from the line items."""
        total_value = round(sum(i.quantity * i.price for i in items), 2)
        average = sum(i.confidence for i in items) / len(items) if items else 0.0
        return cls(
            supplier=supplier,
            po_number=po_number,
            date=date,
            items=list(items),
            total_items=sum(i.quantity for i in items),
            total_value=total_value,
            average_confidence=round(average, 2),
        )
