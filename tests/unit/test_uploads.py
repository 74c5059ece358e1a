"""
Unit tests for upload acceptance checks.
"""
import pytest

from models.job import UploadedFile
from pipeline.uploads import MAX_UPLOAD_BYTES, check_upload, file_from_path


@pytest.mark.unit
class TestCheckUpload:
    """Tests for check_upload."""

    @pytest.mark.parametrize("mime_type", [
        "application/pdf",
        "image/jpeg",
        "image/png",
        "text/csv",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ])
    def test_accepts_supported_types(self, mime_type):
        assert check_upload(UploadedFile(name="po", size=100, mime_type=mime_type)) is None

    def test_rejects_unsupported_type(self):
        reason = check_upload(UploadedFile(name="notes.txt", size=10, mime_type="text/plain"))
        assert reason is not None
        assert "Invalid file type" in reason

    def test_size_limit(self):
        at_limit = UploadedFile(name="a.pdf", size=MAX_UPLOAD_BYTES, mime_type="application/pdf")
        over = UploadedFile(name="b.pdf", size=MAX_UPLOAD_BYTES + 1, mime_type="application/pdf")
        assert check_upload(at_limit) is None
        assert check_upload(over) == "File too large. Maximum size is 10MB"


@pytest.mark.unit
class TestFileFromPath:
    """Tests for file_from_path."""

    def test_describes_file_on_disk(self, temp_dir):
        path = temp_dir / "order.pdf"
        path.write_bytes(b"%PDF-1.4 test")

        file = file_from_path(path)

        assert file.name == "order.pdf"
        assert file.size == len(b"%PDF-1.4 test")
        assert file.mime_type == "application/pdf"
        assert file.binary_ref == path

    def test_unknown_extension(self, temp_dir):
        path = temp_dir / "blob.zzz-unknown"
        path.write_bytes(b"x")
        assert file_from_path(path).mime_type == "application/octet-stream"
