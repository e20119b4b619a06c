"""
Tests for PDF Jobs Backend API endpoints.

Tests cover:
- Health check and tool listing
- Job submission (single, batch, validation errors)
- Job status and batch status
- Downloads
- Job deletion
- Upload cleanup on failure
"""

import json
from pathlib import Path

import pytest

from pdf_jobs_backend.models import JobStatus
from pdf_jobs_backend.scheduler import ExecutionPolicy, JobScheduler
from pdf_jobs_backend.main import app, get_scheduler


def _pdf_part(path, name=None):
    return ("files", (name or Path(path).name, Path(path).read_bytes(), "application/pdf"))


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should return status ok."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestTools:
    """Tests for the /tools endpoint."""

    def test_list_tools(self, client):
        response = client.get("/tools")
        assert response.status_code == 200

        tools = {item["toolType"]: item for item in response.json()}
        assert tools["merge-pdf"]["combinesInputs"] is True
        assert tools["merge-pdf"]["inputArity"] == "multiple"
        assert "optionsSchema" in tools["split-pdf"]


class TestSubmitJobs:
    """Tests for POST /jobs."""

    def test_single_file_returns_one_job(self, client, make_pdf):
        response = client.post(
            "/jobs",
            data={"toolType": "rotate-pdf", "options": json.dumps({"rotationAngle": 90})},
            files=[_pdf_part(make_pdf())],
        )
        assert response.status_code == 200

        data = response.json()
        assert set(data) == {"jobId", "status"}
        assert data["status"] == "pending"

    def test_batch_returns_one_job_per_file(self, client, make_pdf):
        response = client.post(
            "/jobs",
            data={"toolType": "rotate-pdf"},
            files=[_pdf_part(make_pdf("a.pdf")), _pdf_part(make_pdf("b.pdf"))],
        )
        assert response.status_code == 200

        data = response.json()
        assert isinstance(data, list)
        assert len(data) == 2
        assert data[0]["jobId"] != data[1]["jobId"]

    def test_merge_returns_single_job(self, client, make_pdf):
        response = client.post(
            "/jobs",
            data={"toolType": "merge-pdf"},
            files=[_pdf_part(make_pdf("a.pdf")), _pdf_part(make_pdf("b.pdf"))],
        )
        assert response.status_code == 200
        assert isinstance(response.json(), dict)

    def test_unknown_tool_is_rejected(self, client, scheduler, make_pdf):
        response = client.post("/jobs", data={"toolType": "compress-pdf"}, files=[_pdf_part(make_pdf())])
        assert response.status_code == 400
        assert "compress-pdf" in response.json()["detail"]
        assert scheduler.store.count() == 0

    def test_missing_files_are_rejected(self, client, scheduler):
        response = client.post("/jobs", data={"toolType": "merge-pdf"})
        assert response.status_code == 400
        assert response.json()["detail"] == "No files provided"
        assert scheduler.store.count() == 0

    def test_non_pdf_upload_is_rejected(self, client, scheduler):
        response = client.post(
            "/jobs",
            data={"toolType": "rotate-pdf"},
            files=[("files", ("notes.txt", b"hello", "text/plain"))],
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Only PDF uploads are supported"

    def test_malformed_options_json_is_rejected(self, client, make_pdf):
        response = client.post(
            "/jobs",
            data={"toolType": "rotate-pdf", "options": "{not json"},
            files=[_pdf_part(make_pdf())],
        )
        assert response.status_code == 400
        assert "Invalid options JSON" in response.json()["detail"]

    def test_invalid_options_create_no_job_and_keep_no_upload(self, client, scheduler, make_pdf):
        response = client.post(
            "/jobs",
            data={"toolType": "rotate-pdf", "options": json.dumps({"rotationAngle": 45})},
            files=[_pdf_part(make_pdf())],
        )
        assert response.status_code == 400
        assert scheduler.store.count() == 0
        assert not any(path.is_file() for path in scheduler.artifacts.upload_root.rglob("*"))


class TestJobStatus:
    """Tests for GET /jobs/{job_id} and POST /batches/status."""

    def test_completed_job_status(self, client, make_pdf):
        job_id = client.post(
            "/jobs", data={"toolType": "pdf-to-txt"}, files=[_pdf_part(make_pdf())],
        ).json()["jobId"]

        response = client.get(f"/jobs/{job_id}")
        assert response.status_code == 200

        data = response.json()
        assert data["jobId"] == job_id
        assert data["toolType"] == "pdf-to-txt"
        assert data["status"] == "completed"
        assert data["downloadUrl"] == f"/jobs/{job_id}/download"
        assert data["errorDetail"] is None
        assert data["completedAt"] is not None

    def test_failed_job_status(self, client, make_pdf):
        job_id = client.post(
            "/jobs",
            data={"toolType": "delete-pdf-pages", "options": json.dumps({"pagesToDelete": "1-3"})},
            files=[_pdf_part(make_pdf(page_count=3))],
        ).json()["jobId"]

        data = client.get(f"/jobs/{job_id}").json()
        assert data["status"] == "failed"
        assert data["errorDetail"]
        assert data["outputRef"] is None
        assert data["downloadUrl"] is None

    def test_unknown_job_returns_404(self, client):
        response = client.get("/jobs/does-not-exist")
        assert response.status_code == 404
        assert response.json()["detail"] == "Job not found"

    def test_batch_status(self, client, make_pdf):
        jobs = client.post(
            "/jobs",
            data={"toolType": "pdf-to-txt"},
            files=[_pdf_part(make_pdf("a.pdf")), _pdf_part(make_pdf("b.pdf"))],
        ).json()
        job_ids = [job["jobId"] for job in jobs]

        response = client.post("/batches/status", json={"jobIds": job_ids})
        assert response.status_code == 200

        data = response.json()
        assert data["allTerminal"] is True
        assert data["completed"] == 2
        assert data["progress"] == 1.0
        assert list(data["perJobStatus"]) == job_ids

    def test_batch_status_unknown_job(self, client):
        response = client.post("/batches/status", json={"jobIds": ["ghost"]})
        assert response.status_code == 404

    def test_batch_status_requires_ids(self, client):
        response = client.post("/batches/status", json={"jobIds": []})
        assert response.status_code == 422


class TestDownload:
    """Tests for GET /jobs/{job_id}/download."""

    def test_download_completed_output(self, client, make_pdf):
        job_id = client.post(
            "/jobs",
            data={"toolType": "rotate-pdf", "options": json.dumps({"rotationAngle": 270})},
            files=[_pdf_part(make_pdf())],
        ).json()["jobId"]

        response = client.get(f"/jobs/{job_id}/download")
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")
        assert f"rotate-pdf-{job_id}.pdf" in response.headers["content-disposition"]

    def test_download_not_ready(self, client, store, registry, artifacts, make_pdf):
        deferred = JobScheduler(store, registry, artifacts, policy=ExecutionPolicy(delay_seconds=60))
        app.dependency_overrides[get_scheduler] = lambda: deferred

        job_id = client.post("/jobs", data={"toolType": "pdf-to-txt"}, files=[_pdf_part(make_pdf())]).json()["jobId"]
        assert client.get(f"/jobs/{job_id}").json()["status"] == JobStatus.PENDING.value

        response = client.get(f"/jobs/{job_id}/download")
        assert response.status_code == 404
        assert response.json()["detail"] == "File not found or not ready"

        response = client.delete(f"/jobs/{job_id}")
        assert response.status_code == 409
        deferred.shutdown(wait=False)

    def test_download_unknown_job(self, client):
        assert client.get("/jobs/ghost/download").status_code == 404


class TestDeleteJob:
    """Tests for DELETE /jobs/{job_id}."""

    def test_delete_finished_job(self, client, make_pdf):
        job_id = client.post("/jobs", data={"toolType": "pdf-to-txt"}, files=[_pdf_part(make_pdf())]).json()["jobId"]

        response = client.delete(f"/jobs/{job_id}")
        assert response.status_code == 200
        assert response.json() == {"status": "deleted"}
        assert client.get(f"/jobs/{job_id}").status_code == 404

    def test_delete_unknown_job(self, client):
        assert client.delete("/jobs/ghost").status_code == 404


class TestUploadFailure:
    """Tests for partial upload cleanup."""

    def test_stored_uploads_are_removed_when_a_later_one_fails(self, client, scheduler, monkeypatch, make_pdf):
        store_path = scheduler.artifacts.new_upload_path
        calls = []

        def flaky_upload_path(filename):
            calls.append(filename)
            if len(calls) == 2:
                raise OSError("No space left on device")
            return store_path(filename)

        monkeypatch.setattr(scheduler.artifacts, "new_upload_path", flaky_upload_path)

        with pytest.raises(OSError):
            client.post(
                "/jobs",
                data={"toolType": "rotate-pdf"},
                files=[_pdf_part(make_pdf("a.pdf")), _pdf_part(make_pdf("b.pdf"))],
            )

        assert calls == ["a.pdf", "b.pdf"]
        assert not any(path.is_file() for path in scheduler.artifacts.upload_root.rglob("*"))
        assert scheduler.store.count() == 0
