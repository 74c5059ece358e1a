"""
Purchase order extraction collaborators.

The batch pipeline drives every job through an OrderExtractor:

    extract(file, report_progress) -> ParsedPurchaseOrder

Extractors report progress (0-100) through the callback as real work
happens and raise ExtractionError (or any exception) on failure.  The
callback may block while the pipeline is paused and may raise to cancel
a job that was removed or stopped; extractors must let that propagate.

CsvOrderExtractor  -- structured CSV purchase orders.  Column headers are
                      matched against synonym sets, so "Item Code" / "SKU"
                      or "Unit Cost" / "Price" are all understood.

SimulatedExtractor -- timer-driven stand-in that advances progress in
                      random steps and returns a fixed sample order.  Used
                      for demos and tests; it does not read the file.
"""
from __future__ import annotations

import csv
import io
import logging
import random
import re
import time
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Callable, Iterable, Optional

from models.job import UploadedFile
from models.purchase_order import ParsedItem, ParsedPurchaseOrder

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ExtractionError(Exception):
    """The extractor could not produce an order from the file."""


class OrderExtractor(ABC):
    """Turns one uploaded file into a ParsedPurchaseOrder."""

    @abstractmethod
    def extract(self, file: UploadedFile, report_progress: ProgressCallback) -> ParsedPurchaseOrder:
        ...


# ---------------------------------------------------------------------------
# CsvOrderExtractor
# ---------------------------------------------------------------------------

# Canonical column-name sets (normalised: lowercase, collapsed whitespace)
_COLUMN_KEYS: dict[str, set[str]] = {
    "sku":        {"sku", "code", "item code", "part no", "part number",
                   "product code", "item no", "item number", "ref"},
    "name":       {"name", "description", "item", "product", "product name",
                   "item description", "title"},
    "quantity":   {"qty", "quantity", "units", "count", "order qty", "ordered"},
    "price":      {"price", "unit price", "unit cost", "cost", "rate",
                   "price each", "each"},
    "confidence": {"confidence", "score", "conf"},
    "category":   {"category", "product type", "type", "department"},
    "supplier":   {"supplier", "vendor", "supplier name"},
    "po_number":  {"po number", "po", "po no", "po #", "order number", "purchase order"},
    "date":       {"date", "po date", "order date", "issue date"},
}


def _norm(key: str) -> str:
    """Normalise a column header for comparison."""
    return re.sub(r"[\s_\-\.]+", " ", str(key)).lower().strip()


def _to_float(value: str) -> Optional[float]:
    cleaned = re.sub(r"[^\d.\-]", "", value.replace(",", ""))
    try:
        return float(cleaned)
    except ValueError:
        return None


class CsvOrderExtractor(OrderExtractor):
    """
    Reads a purchase order exported as CSV.

    Required columns: sku, name, quantity, price.  Optional: confidence
    (defaults to 100, as structured data needs no OCR), category, and the
    order-level supplier / po_number / date, read from the first row that
    carries them.
    """

    REQUIRED = ("sku", "name", "quantity", "price")

    def __init__(self, default_supplier: str = "Unknown Supplier"):
        self.default_supplier = default_supplier

    def extract(self, file: UploadedFile, report_progress: ProgressCallback) -> ParsedPurchaseOrder:
        text = self._read_text(file)
        rows = list(csv.DictReader(io.StringIO(text)))
        if not rows:
            raise ExtractionError(f"{file.name}: no data rows found")

        col_map = self._build_col_map(rows[0].keys())
        missing = [f for f in self.REQUIRED if f not in col_map.values()]
        if missing:
            raise ExtractionError(f"{file.name}: missing column(s) {', '.join(missing)}")
        logger.debug("CSV column map for %s: %s", file.name, col_map)

        header: dict[str, str] = {}
        items: list[ParsedItem] = []
        for i, row in enumerate(rows, 1):
            values = {
                field: (row.get(col) or "").strip()
                for col, field in col_map.items()
            }
            for key in ("supplier", "po_number", "date"):
                if values.get(key) and key not in header:
                    header[key] = values[key]

            quantity = _to_float(values["quantity"])
            price = _to_float(values["price"])
            if not values["sku"] and not values["name"]:
                logger.debug("Skipping blank row %d in %s", i, file.name)
                continue
            if quantity is None or price is None:
                raise ExtractionError(
                    f"{file.name}: row {i} has a non-numeric quantity or price"
                )
            confidence = _to_float(values.get("confidence") or "")
            items.append(ParsedItem(
                sku=values["sku"],
                name=values["name"] or values["sku"],
                quantity=quantity,
                price=price,
                confidence=100.0 if confidence is None else confidence,
                category=values.get("category") or None,
            ))
            report_progress(int(i * 100 / len(rows)))

        if not items:
            raise ExtractionError(f"{file.name}: no line items found")

        logger.info("CSV extraction: %d line items from %s", len(items), file.name)
        return ParsedPurchaseOrder.from_items(
            supplier=header.get("supplier", self.default_supplier),
            po_number=header.get("po_number", Path(file.name).stem),
            date=header.get("date", date.today().isoformat()),
            items=items,
        )

    @staticmethod
    def _read_text(file: UploadedFile) -> str:
        ref = file.binary_ref
        if isinstance(ref, bytes):
            return ref.decode("utf-8-sig")
        if isinstance(ref, (str, Path)):
            path = Path(ref)
            if not path.exists():
                raise ExtractionError(f"File not found: {path}")
            return path.read_text(encoding="utf-8-sig")
        raise ExtractionError(f"{file.name}: unsupported file reference {type(ref).__name__}")

    @staticmethod
    def _build_col_map(headers: Iterable[str]) -> dict[str, str]:
        mapping: dict[str, str] = {}
        assigned: set[str] = set()
        for header in headers:
            if header is None:
                continue
            normalised = _norm(header)
            for field_name, key_set in _COLUMN_KEYS.items():
                if field_name not in assigned and normalised in key_set:
                    mapping[header] = field_name
                    assigned.add(field_name)
                    break
        return mapping


# ---------------------------------------------------------------------------
# SimulatedExtractor
# ---------------------------------------------------------------------------

SAMPLE_ITEMS: tuple[ParsedItem, ...] = (
    ParsedItem(sku="TECH-001", name="Wireless Bluetooth Headphones", quantity=10, price=89.99, confidence=95),
    ParsedItem(sku="TECH-002", name="USB-C Charging Cable", quantity=25, price=12.99, confidence=98),
    ParsedItem(sku="TECH-003", name="Smartphone Case - Clear", quantity=15, price=24.99, confidence=87),
    ParsedItem(sku="TECH-004", name="Portable Power Bank 10000mAh", quantity=8, price=45.99, confidence=92),
    ParsedItem(sku="TECH-005", name="Wireless Charging Pad", quantity=12, price=34.99, confidence=85),
)


class SimulatedExtractor(OrderExtractor):
    """
    Stand-in extractor: progress climbs by a random 0-15 points every
    *tick_seconds* until it reaches 100, then a sample order is returned.

    Files whose name is in *fail_names* fail half-way through, which lets
    demos and tests exercise the failed state.
    """

    MAX_STEP = 15

    def __init__(
        self,
        tick_seconds: float = 0.2,
        supplier: str = "TechnoSupply Co.",
        fail_names: Iterable[str] = (),
        rng: Optional[random.Random] = None,
    ):
        self.tick_seconds = tick_seconds
        self.supplier = supplier
        self.fail_names = set(fail_names)
        self._rng = rng or random.Random()

    def extract(self, file: UploadedFile, report_progress: ProgressCallback) -> ParsedPurchaseOrder:
        progress = 0.0
        while progress < 100:
            if self.tick_seconds:
                time.sleep(self.tick_seconds)
            progress = min(100.0, progress + self._rng.random() * self.MAX_STEP)
            if file.name in self.fail_names and progress >= 50:
                raise ExtractionError(f"Could not read purchase order from {file.name}")
            report_progress(int(progress))

        return ParsedPurchaseOrder.from_items(
            supplier=self.supplier,
            po_number=f"PO-{date.today().year}-{self._rng.randint(0, 999):03d}",
            date=date.today().isoformat(),
            items=list(SAMPLE_ITEMS),
        )
