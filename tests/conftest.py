"""
Pytest configuration and shared fixtures for the bulk PO engine test suite.
"""
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Generator, Iterable, Optional

import pytest

from models.job import UploadedFile
from models.pricing import PricingRule
from models.purchase_order import ParsedItem, ParsedPurchaseOrder
from models.result import SyncResult
from models.settings import BulkProcessingConfig
from pipeline.extractor import ExtractionError, OrderExtractor
from pipeline.sink import OrderSink

# Run from the project root so relative config paths resolve
PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)

GATE_TIMEOUT = 5.0


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="po_engine_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> "Config":
    """Provide a test configuration with isolated directories."""
    from config import Config

    config = Config()
    # Override paths to use temp directory
    config.config_dir = temp_dir / "config"
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.output_dir = temp_dir / "output"
    config.output_dir.mkdir(parents=True, exist_ok=True)
    config.db_path = temp_dir / "output" / "pipeline.db"
    config.backup_dir = temp_dir / "backups"
    config.backup_retention_count = 3
    config.webhook_export_enabled = False
    config.webhook_export_url = None
    return config


@pytest.fixture
def test_db(test_config) -> "Database":
    """Provide a test database instance."""
    from pipeline.database import Database
    return Database(test_config.db_path)


@pytest.fixture
def fast_config() -> BulkProcessingConfig:
    """Batch settings with no delay between jobs and no backup."""
    return BulkProcessingConfig(processing_delay=0, backup_before_processing=False)


def make_order(
    po_number: str = "PO-2024-001",
    supplier: str = "TechnoSupply Co.",
    confidence: float = 100.0,
    items: Optional[Iterable[ParsedItem]] = None,
) -> ParsedPurchaseOrder:
    """Build a small parsed order with derived totals."""
    if items is None:
        items = [
            ParsedItem(sku="TECH-001", name="Wireless Headphones", quantity=2, price=50.0,
                       confidence=confidence, category="Electronics"),
            ParsedItem(sku="TECH-002", name="USB-C Cable", quantity=10, price=10.0,
                       confidence=confidence, category="Accessories"),
        ]
    return ParsedPurchaseOrder.from_items(supplier, po_number, "2024-01-15", list(items))


def make_file(name: str, size: int = 1024, mime_type: str = "application/pdf") -> UploadedFile:
    return UploadedFile(name=name, size=size, mime_type=mime_type, binary_ref=None)


@pytest.fixture
def sample_order() -> ParsedPurchaseOrder:
    return make_order()


@pytest.fixture
def sample_rules() -> list[PricingRule]:
    """General 40% markup plus a cheaper rule for electronics."""
    return [
        PricingRule(id="general", markup_value=40, priority=10),
        PricingRule(
            id="electronics",
            conditions={"category": "Electronics"},
            markup_value=25,
            rounding_strategy="psychological",
            psychological_ending=".99",
            priority=5,
        ),
    ]


class ControlledExtractor(OrderExtractor):
    """
    Test extractor whose progress the test drives.

    For every file it reports 10%, passes the "started" checkpoint, reports
    60%, passes the "reported" checkpoint and then returns an order (or
    raises for names in fail_names).  When gated, each checkpoint blocks
    until the test opens it, so the test can act while a job is mid-flight.
    """

    def __init__(
        self,
        gated: bool = False,
        fail_names: Iterable[str] = (),
        confidence: Optional[dict] = None,
    ):
        self.gated = gated
        self.fail_names = set(fail_names)
        self.confidence = confidence or {}
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._reached: dict[tuple, threading.Event] = {}
        self._gates: dict[tuple, threading.Event] = {}

    def _event(self, table: dict, key: tuple) -> threading.Event:
        with self._lock:
            return table.setdefault(key, threading.Event())

    def _checkpoint(self, name: str, stage: str) -> None:
        with self._lock:
            self._reached.setdefault((name, stage), threading.Event()).set()
            if not self.gated:
                return
            gate = self._gates.setdefault((name, stage), threading.Event())
        gate.wait(GATE_TIMEOUT)

    def wait_reached(self, name: str, stage: str, timeout: float = GATE_TIMEOUT) -> bool:
        return self._event(self._reached, (name, stage)).wait(timeout)

    def has_reached(self, name: str, stage: str) -> bool:
        return self._event(self._reached, (name, stage)).is_set()

    def open(self, name: str, stage: str) -> None:
        self._event(self._gates, (name, stage)).set()

    def release_all(self) -> None:
        """Stop gating and let every blocked checkpoint through."""
        with self._lock:
            self.gated = False
            for gate in self._gates.values():
                gate.set()

    def extract(self, file, report_progress) -> ParsedPurchaseOrder:
        with self._lock:
            self.calls.append(file.name)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            report_progress(10)
            self._checkpoint(file.name, "started")
            report_progress(60)
            self._checkpoint(file.name, "reported")
            if file.name in self.fail_names:
                raise ExtractionError(f"Could not read purchase order from {file.name}")
            return make_order(
                po_number=Path(file.name).stem,
                confidence=self.confidence.get(file.name, 100.0),
            )
        finally:
            with self._lock:
                self.active -= 1


class RecordingSink(OrderSink):
    """Sink that records what it receives; refuses or raises for chosen PO numbers."""

    def __init__(self, refuse: Iterable[str] = (), explode: Iterable[str] = ()):
        self.refuse = set(refuse)
        self.explode = set(explode)
        self.received: list[tuple[str, ParsedPurchaseOrder]] = []

    def sync(self, job_id: str, order: ParsedPurchaseOrder) -> SyncResult:
        if order.po_number in self.explode:
            raise RuntimeError("connection reset")
        if order.po_number in self.refuse:
            return SyncResult(ok=False, error="duplicate product handle")
        self.received.append((job_id, order))
        return SyncResult(ok=True, reference=job_id)


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def file_factory():
    return make_file


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def extractor() -> ControlledExtractor:
    return ControlledExtractor()


@pytest.fixture
def gated_extractor() -> Generator[ControlledExtractor, None, None]:
    ext = ControlledExtractor(gated=True)
    yield ext
    # Never leave a worker thread blocked on a gate
    ext.release_all()


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
