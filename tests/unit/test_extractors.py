"""
Unit tests for the CSV and simulated order extractors.
"""
import random

import pytest

from models.job import UploadedFile
from pipeline.extractor import CsvOrderExtractor, ExtractionError, SimulatedExtractor


def csv_file(content: str, name: str = "PO-7781.csv") -> UploadedFile:
    data = content.encode("utf-8")
    return UploadedFile(name=name, size=len(data), mime_type="text/csv", binary_ref=data)


@pytest.mark.unit
class TestCsvOrderExtractor:
    """Tests for CsvOrderExtractor."""

    def test_reads_synonym_headers(self):
        """Test that common column names map onto item fields."""
        content = (
            "Item Code,Description,Qty,Unit Cost,Category\n"
            "A-1,Widget,4,2.50,Tools\n"
            "A-2,Gadget,1,\"$1,200.00\",Electronics\n"
        )
        progress = []
        order = CsvOrderExtractor().extract(csv_file(content), progress.append)

        assert [i.sku for i in order.items] == ["A-1", "A-2"]
        assert order.items[0].quantity == 4
        assert order.items[0].price == 2.5
        assert order.items[0].category == "Tools"
        assert order.items[0].confidence == 100.0
        assert order.po_number == "PO-7781"
        assert order.supplier == "Unknown Supplier"
        assert progress[-1] == 100

    def test_header_fields_from_first_row_that_has_them(self):
        content = (
            "supplier,po number,date,sku,name,quantity,price,confidence\n"
            ",,,X-1,Cable,10,1.5,90\n"
            "Acme,PO-55,2024-03-01,X-2,Plug,2,4,80\n"
        )
        order = CsvOrderExtractor().extract(csv_file(content), lambda p: None)

        assert order.supplier == "Acme"
        assert order.po_number == "PO-55"
        assert order.date == "2024-03-01"
        assert order.total_items == 12
        assert order.total_value == 23.0
        assert order.average_confidence == 85.0

    def test_blank_rows_are_skipped(self):
        content = "sku,name,qty,price\nA,Widget,1,1\n,,,\n"
        order = CsvOrderExtractor().extract(csv_file(content), lambda p: None)
        assert len(order.items) == 1

    def test_missing_columns(self):
        with pytest.raises(ExtractionError, match="missing column"):
            CsvOrderExtractor().extract(csv_file("sku,name\nA,Widget\n"), lambda p: None)

    def test_non_numeric_quantity(self):
        with pytest.raises(ExtractionError, match="row 1"):
            CsvOrderExtractor().extract(csv_file("sku,name,qty,price\nA,Widget,lots,1\n"), lambda p: None)

    def test_empty_file(self):
        with pytest.raises(ExtractionError, match="no data rows"):
            CsvOrderExtractor().extract(csv_file("sku,name,qty,price\n"), lambda p: None)

    def test_reads_path_reference(self, temp_dir):
        path = temp_dir / "order.csv"
        path.write_text("sku,name,qty,price\nA,Widget,3,5\n", encoding="utf-8")
        file = UploadedFile(name="order.csv", size=path.stat().st_size, mime_type="text/csv", binary_ref=path)

        order = CsvOrderExtractor(default_supplier="House").extract(file, lambda p: None)

        assert order.supplier == "House"
        assert order.total_value == 15.0

    def test_missing_path(self, temp_dir):
        file = UploadedFile(name="gone.csv", binary_ref=temp_dir / "gone.csv")
        with pytest.raises(ExtractionError, match="not found"):
            CsvOrderExtractor().extract(file, lambda p: None)


@pytest.mark.unit
class TestSimulatedExtractor:
    """Tests for SimulatedExtractor."""

    def test_progress_climbs_to_completion(self):
        progress = []
        extractor = SimulatedExtractor(tick_seconds=0, rng=random.Random(7))

        order = extractor.extract(UploadedFile(name="scan.pdf"), progress.append)

        assert progress == sorted(progress)
        assert progress[-1] == 100
        assert all(b - a <= SimulatedExtractor.MAX_STEP for a, b in zip(progress, progress[1:]))
        assert order.supplier == "TechnoSupply Co."
        assert len(order.items) == 5
        assert order.total_items == 70
        assert order.total_value == pytest.approx(2387.30)
        assert order.average_confidence == pytest.approx(91.4)
        assert order.po_number.startswith("PO-")

    def test_named_file_fails_half_way(self):
        progress = []
        extractor = SimulatedExtractor(tick_seconds=0, fail_names={"bad.pdf"}, rng=random.Random(3))

        with pytest.raises(ExtractionError):
            extractor.extract(UploadedFile(name="bad.pdf"), progress.append)

        assert all(p < 50 for p in progress)
