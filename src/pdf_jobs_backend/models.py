from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True)
class JobRecord:
    """
    Immutable snapshot of a job as stored in the job database.

    Every store operation returns a fresh snapshot, so a reader never sees a
    half-applied update: status, output_ref, error_detail and completed_at
    always come from the same committed row.

    Attributes:
        job_id: Unique job identifier (hex UUID)
        tool_type: Registry key of the tool that processes the job
        status: Current lifecycle status
        input_refs: Ordered artifact refs; order matters for combining tools
        options: Validated tool options, JSON-serialisable
        created_at: Creation timestamp (UTC)
        output_ref: Artifact ref of the produced output (completed jobs only)
        error_detail: Failure reason (failed jobs only)
        s3_key: S3 key of the mirrored output, if it was published
        completed_at: Timestamp of the terminal transition
    """

    job_id: str
    tool_type: str
    status: JobStatus
    input_refs: Tuple[str, ...]
    created_at: datetime
    options: Dict[str, Any] = field(default_factory=dict)
    output_ref: Optional[str] = None
    error_detail: Optional[str] = None
    s3_key: Optional[str] = None
    completed_at: Optional[datetime] = None

    def to_accepted(self) -> JobAccepted:
        return JobAccepted(job_id=self.job_id, status=self.status)

    def to_status_response(self) -> JobStatusResponse:
        download_url = f"/jobs/{self.job_id}/download" if self.status == JobStatus.COMPLETED else None
        return JobStatusResponse(
            job_id=self.job_id,
            tool_type=self.tool_type,
            status=self.status,
            input_refs=list(self.input_refs),
            output_ref=self.output_ref,
            error_detail=self.error_detail,
            download_url=download_url,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobAccepted(CamelModel):
    job_id: str
    status: JobStatus


class JobStatusResponse(CamelModel):
    job_id: str
    tool_type: str
    status: JobStatus
    input_refs: List[str]
    output_ref: Optional[str] = None
    error_detail: Optional[str] = None
    download_url: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class BatchStatusRequest(CamelModel):
    job_ids: List[str] = Field(min_length=1)


class BatchStatusResponse(CamelModel):
    per_job_status: Dict[str, JobStatus]
    all_terminal: bool
    completed: int
    failed: int
    in_flight: int
    progress: float


class ToolDescriptor(CamelModel):
    tool_type: str
    input_arity: str
    combines_inputs: bool
    run_inline: bool
    description: str
    options_schema: Dict[str, Any]
