"""
Tests for artifact storage and filename handling.
"""

import os
import time

import pytest

from pdf_jobs_backend.errors import ArtifactNotFound
from pdf_jobs_backend.utils import is_pdf_upload, sanitize_filename


class TestSanitizeFilename:
    """Tests for sanitize_filename()."""

    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("report.pdf", "report.pdf"),
            ("My Report (final).PDF", "My-Report-final.pdf"),
            ("../../etc/passwd", "passwd"),
            ("C:\\Users\\me\\scan.pdf", "scan.pdf"),
            ("@#$.pdf", "document.pdf"),
        ],
    )
    def test_sanitize(self, filename, expected):
        assert sanitize_filename(filename) == expected

    def test_pdf_upload_detection(self):
        assert is_pdf_upload("scan.PDF", None)
        assert is_pdf_upload("blob", "application/pdf")
        assert not is_pdf_upload("notes.txt", "text/plain")


class TestArtifactStore:
    """Tests for refs, resolution and cleanup."""

    def test_upload_refs_are_relative(self, artifacts):
        path = artifacts.new_upload_path("Quarterly Report.pdf")
        path.write_bytes(b"%PDF-1.4")

        ref = artifacts.ref_for(path)

        assert ref.startswith("uploads/")
        assert ref.endswith("/Quarterly-Report.pdf")
        assert artifacts.resolve(ref) == path.resolve()

    def test_uploads_with_same_name_do_not_collide(self, artifacts):
        assert artifacts.new_upload_path("a.pdf") != artifacts.new_upload_path("a.pdf")

    @pytest.mark.parametrize("ref", ["../outside.pdf", "/etc/passwd", "uploads/missing/file.pdf"])
    def test_bad_refs_are_not_found(self, artifacts, ref):
        with pytest.raises(ArtifactNotFound):
            artifacts.resolve(ref)

    def test_ref_outside_root_is_rejected(self, artifacts, tmp_path):
        with pytest.raises(ValueError):
            artifacts.ref_for(tmp_path / "elsewhere.pdf")

    def test_delete_removes_empty_directories(self, artifacts):
        path = artifacts.new_upload_path("a.pdf")
        path.write_bytes(b"%PDF-1.4")

        assert artifacts.delete(artifacts.ref_for(path)) is True
        assert not path.parent.exists()
        assert artifacts.upload_root.exists()
        assert artifacts.delete("uploads/missing/a.pdf") is False

    def test_prune_only_removes_old_files(self, artifacts):
        old = artifacts.output_path("job-old", "old.pdf")
        old.write_bytes(b"old")
        stale = time.time() - 7200
        os.utime(old, (stale, stale))
        fresh = artifacts.output_path("job-new", "new.pdf")
        fresh.write_bytes(b"new")

        assert artifacts.prune(3600) == 1
        assert not old.exists()
        assert fresh.exists()
