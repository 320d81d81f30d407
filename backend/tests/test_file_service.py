"""
Compyy Backend — Media Storage Unit Tests
===========================================

What:  Tests for FileService validation (extension, size, MIME type) and
       the served-path guard.
How:   Temporary storage roots; libmagic is mocked except where a real
       detection is the point of the test.

Test Strategy:
    ✅ Allowed and rejected extensions
    ✅ Size limits (declared and actual) and empty uploads
    ✅ Date-organized UUID storage paths
    ✅ Paths escaping the storage root are refused
    ❌ Real MIME detection requires python-magic (skipped if unavailable)
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from compyy.config import settings
from compyy.exceptions import NotFoundError, ValidationError
from compyy.services.file_service import FileService


class TestFileValidation:
    """Validation steps of FileService."""

    @pytest.fixture(autouse=True)
    def service(self, temp_storage):
        self.service = FileService(storage_root=temp_storage)

    # ── Extension Validation ──────────────────────────────────────────────

    @pytest.mark.parametrize("filename", ["photo.png", "photo.JPG", "photo.jpeg", "loop.gif", "art.webp"])
    def test_allowed_extensions(self, filename):
        assert self.service.validate_extension(filename) == Path(filename).suffix.lower()

    @pytest.mark.parametrize("filename", ["document.pdf", "malware.exe", "noextension", "vector.svg"])
    def test_rejected_extensions(self, filename):
        with pytest.raises(ValidationError, match="not supported"):
            self.service.validate_extension(filename)

    # ── Size Validation ───────────────────────────────────────────────────

    def test_size_within_limit(self):
        self.service.validate_size(1000, 1000)

    def test_size_at_limit(self):
        self.service.validate_size(settings.max_file_size, settings.max_file_size)

    def test_declared_size_over_limit(self):
        """Content-Length alone is enough to reject an upload."""
        with pytest.raises(ValidationError, match="exceeds maximum"):
            self.service.validate_size(settings.max_file_size + 1, 10)

    def test_actual_size_over_limit(self):
        with pytest.raises(ValidationError, match="exceeds maximum"):
            self.service.validate_size(None, settings.max_file_size + 1)

    def test_empty_file(self):
        with pytest.raises(ValidationError, match="empty"):
            self.service.validate_size(None, 0)

    # ── MIME Validation ───────────────────────────────────────────────────

    def test_renamed_text_file_rejected(self):
        pytest.importorskip("magic")
        with pytest.raises(ValidationError, match="content type"):
            self.service.validate_mime_type(b"#!/bin/sh\necho not an image\n", "evil.png")

    def test_png_detected(self, sample_png_bytes):
        pytest.importorskip("magic")
        assert self.service.validate_mime_type(sample_png_bytes, "pixel.png") == "image/png"


class TestStorage:

    @pytest.mark.asyncio
    async def test_store_uses_date_directory_and_uuid_name(self, temp_storage, sample_png_bytes):
        service = FileService(storage_root=temp_storage)
        with patch.object(service, "validate_mime_type", return_value="image/jpeg"):
            absolute_path, relative_path, mime_type = await service.validate_and_store(
                filename="Holiday Photo.JPEG", content=sample_png_bytes,
            )

        year, month, day, name = relative_path.split("/")
        assert len(year) == 4 and len(month) == 2 and len(day) == 2
        assert name.endswith(".jpg")
        assert "Holiday" not in name
        assert Path(absolute_path).read_bytes() == sample_png_bytes
        assert mime_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_resolve_stored_file(self, temp_storage, sample_png_bytes):
        service = FileService(storage_root=temp_storage)
        absolute_path, relative_path = await service.store_file(sample_png_bytes, ".png")
        assert service.resolve_path(relative_path) == Path(absolute_path).resolve()

    @pytest.mark.parametrize("path", ["../secret.txt", "2025/../../etc/passwd", "/etc/passwd"])
    def test_paths_outside_root_rejected(self, temp_storage, path):
        service = FileService(storage_root=temp_storage)
        with pytest.raises(ValidationError, match="Invalid file path"):
            service.resolve_path(path)

    def test_missing_file(self, temp_storage):
        service = FileService(storage_root=temp_storage)
        with pytest.raises(NotFoundError):
            service.resolve_path("2025/01/01/missing.png")
