from __future__ import annotations

from typing import Dict, FrozenSet

from .errors import InvalidTransition
from .models import JobStatus

_ALLOWED: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def ensure_transition_allowed(job_id: str, from_status: JobStatus, to_status: JobStatus) -> None:
    if to_status not in _ALLOWED.get(from_status, frozenset()):
        raise InvalidTransition(job_id, from_status.value, to_status.value)


def ensure_fields_consistent(status: JobStatus, output_ref: str | None, error_detail: str | None) -> None:
    """Terminal jobs carry exactly one of output/error; live jobs carry neither."""
    if status == JobStatus.COMPLETED:
        if not output_ref or error_detail is not None:
            raise ValueError("A completed job needs an output_ref and no error_detail")
    elif status == JobStatus.FAILED:
        if not error_detail or output_ref is not None:
            raise ValueError("A failed job needs an error_detail and no output_ref")
    elif output_ref is not None or error_detail is not None:
        raise ValueError(f"A {status.value} job cannot carry an output_ref or error_detail")
