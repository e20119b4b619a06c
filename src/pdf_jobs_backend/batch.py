"""
Aggregate status for the jobs of one multi-file submission.

Nothing here holds state between calls: every aggregate is rebuilt from
fresh job database reads, so a caller polling a batch only needs the list of
job ids it was given at submission.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from .database import JobDatabase
from .models import BatchStatusResponse, JobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchProgress:
    """
    Point-in-time view of a batch.

    Attributes:
        per_job_status: Status of every member, in the order the ids were given
        all_terminal: True once every member is completed or failed
        completed: Number of completed members
        failed: Number of failed members
        in_flight: Number of members still pending or processing
        progress: Fraction of members in a terminal state (0.0 - 1.0)
    """

    per_job_status: Dict[str, JobStatus]
    all_terminal: bool
    completed: int
    failed: int
    in_flight: int
    progress: float

    def to_response(self) -> BatchStatusResponse:
        return BatchStatusResponse(
            per_job_status=dict(self.per_job_status),
            all_terminal=self.all_terminal,
            completed=self.completed,
            failed=self.failed,
            in_flight=self.in_flight,
            progress=self.progress,
        )


def aggregate(store: JobDatabase, job_ids: Iterable[str]) -> BatchProgress:
    """
    Read every member of a batch and summarise it.

    Duplicate ids are collapsed; the first occurrence fixes the order. An
    empty batch is reported as terminal with full progress.

    Raises:
        JobNotFound: If any id is unknown
    """
    per_job_status: Dict[str, JobStatus] = {}
    for job_id in job_ids:
        if job_id not in per_job_status:
            per_job_status[job_id] = store.get(job_id).status

    statuses = list(per_job_status.values())
    completed = statuses.count(JobStatus.COMPLETED)
    failed = statuses.count(JobStatus.FAILED)
    total = len(statuses)

    return BatchProgress(
        per_job_status=per_job_status,
        all_terminal=completed + failed == total,
        completed=completed,
        failed=failed,
        in_flight=total - completed - failed,
        progress=(completed + failed) / total if total else 1.0,
    )


def wait_for_jobs(
    store: JobDatabase,
    job_ids: Iterable[str],
    interval: float = 1.0,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> BatchProgress:
    """
    Poll until every job in the batch is terminal.

    Args:
        store: Job database to read from
        job_ids: Jobs to wait for
        interval: Seconds between polls (default: 1.0)
        timeout: Give up after this many seconds; None waits forever

    Returns:
        The first aggregate in which every job is terminal

    Raises:
        JobNotFound: If a job is unknown or disappears while waiting
        TimeoutError: If the batch is still running when the timeout expires
    """
    ids = list(job_ids)
    deadline = None if timeout is None else clock() + timeout

    while True:
        progress = aggregate(store, ids)
        if progress.all_terminal:
            return progress
        if deadline is not None and clock() >= deadline:
            raise TimeoutError(
                f"{progress.in_flight} of {len(progress.per_job_status)} job(s) still running after {timeout}s"
            )
        logger.debug(f"Waiting on {progress.in_flight} job(s), progress {progress.progress:.0%}")
        sleep(interval)
