"""
Exception taxonomy for the job pipeline.

Four families, mapped to HTTP responses in ``main``:

- SubmissionError: request validation before any job exists (400)
- JobNotFound / ArtifactNotFound: lookups of unknown identifiers (404)
- ProcessingError: a tool handler could not produce an output; recorded on
  the job as ``failed`` and never surfaced as a request error
- JobStateError: scheduler/store misuse such as duplicate ids or a second
  terminal transition
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class SubmissionError(PipelineError):
    """A submission was rejected before any job was created."""


class UnknownTool(SubmissionError, LookupError):
    def __init__(self, tool_type: str) -> None:
        super().__init__(f"Unknown tool type: {tool_type!r}")
        self.tool_type = tool_type


class NoInput(SubmissionError, ValueError):
    def __init__(self) -> None:
        super().__init__("No files provided")


class InvalidOptions(SubmissionError, ValueError):
    def __init__(self, tool_type: str, detail: str) -> None:
        super().__init__(f"Invalid options for {tool_type}: {detail}")
        self.tool_type = tool_type
        self.detail = detail


class JobNotFound(PipelineError, LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class ArtifactNotFound(PipelineError, LookupError):
    def __init__(self, ref: str) -> None:
        super().__init__(f"Artifact not found: {ref}")
        self.ref = ref


class ProcessingError(PipelineError):
    """Raised by tool handlers; the message becomes the job's error detail."""


class JobStateError(PipelineError, RuntimeError):
    """Programming-error class failure: the caller misused the store or scheduler."""


class DuplicateJob(JobStateError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job already exists: {job_id}")
        self.job_id = job_id


class InvalidTransition(JobStateError):
    def __init__(self, job_id: str, from_status: Optional[str], to_status: str) -> None:
        super().__init__(f"Invalid transition for job {job_id}: {from_status} -> {to_status}")
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status


class JobBusy(JobStateError):
    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(f"Job {job_id} is still {status}")
        self.job_id = job_id
        self.status = status
