"""
Tests for the retention sweeper.
"""

import time
from datetime import timedelta

from pdf_jobs_backend.models import JobStatus
from pdf_jobs_backend.retention import RetentionSweeper
from pdf_jobs_backend.utils import utcnow


class TestSweep:
    """Tests for RetentionSweeper.sweep()."""

    def test_expired_job_is_removed_with_its_files(self, scheduler, store, artifacts, stored_pdf):
        ref = stored_pdf()
        job = scheduler.get(scheduler.submit("pdf-to-txt", [ref]).job_ids[0])
        sweeper = RetentionSweeper(store, artifacts, max_age_seconds=3600)

        removed = sweeper.sweep(now=utcnow() + timedelta(hours=2))

        assert removed == 1
        assert store.count() == 0
        assert not artifacts.exists(ref)
        assert not (artifacts.output_root / job.job_id).exists()

    def test_recent_job_is_kept(self, scheduler, store, artifacts, stored_pdf):
        ref = stored_pdf()
        job = scheduler.get(scheduler.submit("pdf-to-txt", [ref]).job_ids[0])
        sweeper = RetentionSweeper(store, artifacts, max_age_seconds=3600)

        assert sweeper.sweep() == 0
        assert store.get(job.job_id).status == JobStatus.COMPLETED
        assert artifacts.exists(job.output_ref)

    def test_unfinished_jobs_are_never_removed(self, store, registry, artifacts, stored_pdf):
        from pdf_jobs_backend.scheduler import ExecutionPolicy, JobScheduler

        scheduler = JobScheduler(store, registry, artifacts, policy=ExecutionPolicy(delay_seconds=60))
        job_id = scheduler.submit("pdf-to-txt", [stored_pdf()]).job_ids[0]
        sweeper = RetentionSweeper(store, artifacts, max_age_seconds=1)

        assert sweeper.sweep(now=utcnow() + timedelta(days=1)) == 0
        assert store.get(job_id).status == JobStatus.PENDING
        scheduler.shutdown(wait=False)

    def test_orphaned_files_are_pruned(self, store, artifacts):
        orphan = artifacts.new_upload_path("orphan.pdf")
        orphan.write_bytes(b"%PDF-1.4")
        sweeper = RetentionSweeper(store, artifacts, max_age_seconds=60)

        sweeper.sweep(now=utcnow() + timedelta(minutes=5))

        assert not orphan.exists()
        assert not orphan.parent.exists()


class TestBackgroundThread:
    """Tests for start()/stop()."""

    def test_start_runs_sweeps_until_stopped(self, store, artifacts):
        orphan = artifacts.new_upload_path("orphan.pdf")
        orphan.write_bytes(b"%PDF-1.4")
        sweeper = RetentionSweeper(store, artifacts, max_age_seconds=0, interval_seconds=0.01)

        sweeper.start()
        deadline = time.monotonic() + 5
        while orphan.exists() and time.monotonic() < deadline:
            time.sleep(0.01)
        sweeper.stop(timeout=5)

        assert not orphan.exists()
