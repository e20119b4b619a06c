"""
Pytest configuration and fixtures for PDF Jobs Backend tests.
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PyPDF2 import PdfWriter

# Set test environment variables before importing the app
os.environ["PDF_JOBS__STORAGE__DATA_DIR"] = tempfile.mkdtemp(prefix="pdf_jobs_test_data_")
os.environ["PDF_JOBS__RETENTION__ENABLED"] = "false"
os.environ.pop("S3_BUCKET_NAME", None)

from pdf_jobs_backend.artifacts import ArtifactStore
from pdf_jobs_backend.database import JobDatabase
from pdf_jobs_backend.main import app, get_scheduler
from pdf_jobs_backend.scheduler import ExecutionPolicy, JobScheduler
from pdf_jobs_backend.tools import build_tool_registry


def write_pdf(path, page_count=3, password=None):
    """Write a PDF of blank pages; page N is 100 + N - 1 points wide so order is observable."""
    writer = PdfWriter()
    for index in range(page_count):
        writer.add_blank_page(width=100 + index, height=200)
    if password:
        writer.encrypt(password)
    with open(path, "wb") as buffer:
        writer.write(buffer)
    return Path(path)


@pytest.fixture(scope="session", autouse=True)
def test_data_dir():
    """Remove the app's data directory after all tests."""
    data_dir = os.environ["PDF_JOBS__STORAGE__DATA_DIR"]
    yield data_dir
    shutil.rmtree(data_dir, ignore_errors=True)


@pytest.fixture
def store(tmp_path):
    """A fresh job database."""
    return JobDatabase(tmp_path / "jobs.db")


@pytest.fixture
def artifacts(tmp_path):
    """A fresh artifact store."""
    return ArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def registry():
    return build_tool_registry()


@pytest.fixture
def scheduler(store, registry, artifacts):
    """A scheduler that runs every job before submit returns."""
    manager = JobScheduler(store, registry, artifacts, policy=ExecutionPolicy(inline=True))
    yield manager
    manager.shutdown()


@pytest.fixture
def make_pdf(tmp_path):
    """Factory for PDF files on disk."""
    source_dir = tmp_path / "sources"
    source_dir.mkdir()

    def _make(name="sample.pdf", page_count=3, password=None):
        return write_pdf(source_dir / name, page_count=page_count, password=password)

    return _make


@pytest.fixture
def stored_pdf(artifacts, make_pdf):
    """Factory for PDFs already placed in the artifact store; returns the ref."""

    def _store(name="sample.pdf", page_count=3, password=None):
        source = make_pdf(name, page_count=page_count, password=password)
        destination = artifacts.new_upload_path(name)
        shutil.copyfile(source, destination)
        return artifacts.ref_for(destination)

    return _store


@pytest.fixture
def client(scheduler):
    """Create a test client for the FastAPI app, backed by an inline scheduler."""
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()
