"""
Periodic removal of old jobs and their files.

Finished jobs are kept for ``max_age_seconds`` after they reach a terminal
state, then their record, uploads and output are deleted together. Files no
job refers to any more are pruned by modification time on the same pass.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional

from .artifacts import ArtifactStore
from .database import JobDatabase
from .models import JobStatus
from .utils import utcnow

logger = logging.getLogger(__name__)


class RetentionSweeper:
    def __init__(
        self,
        store: JobDatabase,
        artifacts: ArtifactStore,
        max_age_seconds: float = 3600,
        interval_seconds: float = 1800,
    ) -> None:
        self.store = store
        self.artifacts = artifacts
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Delete expired terminal jobs, then prune stale files.

        Pending and processing jobs are never touched, however old.

        Returns:
            Number of job records removed
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self.max_age_seconds)

        removed = 0
        for status in (JobStatus.COMPLETED, JobStatus.FAILED):
            for record in self.store.list_by_status(status):
                if record.completed_at is None or record.completed_at >= cutoff:
                    continue
                for ref in record.input_refs:
                    self.artifacts.delete(ref)
                self.artifacts.delete(record.output_ref)
                self.artifacts.remove_job_outputs(record.job_id)
                if self.store.delete(record.job_id):
                    removed += 1

        pruned = self.artifacts.prune(self.max_age_seconds, now=now.timestamp())
        if removed or pruned:
            logger.info(f"Retention sweep removed {removed} job(s) and {pruned} stale file(s)")
        return removed

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="retention-sweeper", daemon=True)
        self._thread.start()
        logger.info(
            f"Retention sweeper started (max age {self.max_age_seconds}s, every {self.interval_seconds}s)"
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Retention sweep failed")
