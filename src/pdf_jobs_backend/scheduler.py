"""
Job scheduling and lifecycle management for the PDF tool pipeline.

This module turns submissions into jobs and drives them to a terminal state:
- Validating the tool, the inputs and the tool options before any job exists
- Creating one job for combining tools, or one job per file otherwise
- Running jobs inline or on a deferred, staggered background path
- Converting every handler failure into a ``failed`` job

The JobScheduler holds no job state of its own; the job database is the
single source of truth and every transition goes through it.
"""

from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Set, Tuple
from uuid import uuid4

from omegaconf import DictConfig

from . import s3_service
from .artifacts import ArtifactStore
from .database import JobDatabase
from .errors import InvalidTransition, JobBusy, NoInput
from .models import JobRecord, JobStatus
from .tools import ToolContext, ToolHandler, ToolRegistry
from .utils import utcnow

logger = logging.getLogger(__name__)

INTERRUPTED_DETAIL = "Interrupted by server restart"


@dataclass(frozen=True)
class ExecutionPolicy:
    """
    When jobs run relative to ``submit``.

    Attributes:
        inline: Run every job synchronously before submit returns
        delay_seconds: Base delay before a deferred job starts
        stagger_min_seconds: Lower bound of the extra delay for batch members
        stagger_max_seconds: Upper bound of the extra delay for batch members
        jitter: Source of the extra delay, called with (min, max)
    """

    inline: bool = False
    delay_seconds: float = 0.0
    stagger_min_seconds: float = 0.0
    stagger_max_seconds: float = 0.0
    jitter: Callable[[float, float], float] = random.uniform

    @classmethod
    def from_config(cls, execution: DictConfig) -> ExecutionPolicy:
        return cls(
            inline=bool(execution.inline),
            delay_seconds=float(execution.delay_seconds),
            stagger_min_seconds=float(execution.stagger_min_seconds),
            stagger_max_seconds=float(execution.stagger_max_seconds),
        )

    def delay_for(self, staggered: bool) -> float:
        delay = self.delay_seconds
        if staggered and self.stagger_max_seconds > 0:
            delay += self.jitter(self.stagger_min_seconds, self.stagger_max_seconds)
        return max(0.0, delay)


@dataclass(frozen=True)
class Submission:
    """Jobs created by one submit call, as they were at creation (``pending``)."""

    jobs: Tuple[JobRecord, ...]
    is_batch: bool

    @property
    def job_ids(self) -> List[str]:
        return [job.job_id for job in self.jobs]


class JobScheduler:
    """
    Central coordinator for job creation and execution.

    Thread Safety:
        Jobs are executed on a thread pool; a job's single run is guarded by
        the atomic ``pending -> processing`` transition in the job database,
        so no lock is held across unrelated jobs. The internal lock only
        protects the set of pending deferral timers.

    Attributes:
        store: Job database
        registry: Tool registry used to resolve handlers
        artifacts: Storage for inputs and outputs
        policy: Execution timing policy
    """

    def __init__(
        self,
        store: JobDatabase,
        registry: ToolRegistry,
        artifacts: ArtifactStore,
        policy: Optional[ExecutionPolicy] = None,
        max_workers: int = 2,
        publish_outputs: bool = False,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            store: Job database holding every job record
            registry: Registry of tool handlers
            artifacts: Artifact storage for inputs and outputs
            policy: Execution timing policy (default: deferred, no delay)
            max_workers: Number of concurrently executing jobs (default: 2)
            publish_outputs: Mirror completed outputs to S3 when configured
        """
        self.store = store
        self.registry = registry
        self.artifacts = artifacts
        self.policy = policy or ExecutionPolicy()
        self.publish_outputs = publish_outputs
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pdf-job")
        self._timers: Set[threading.Timer] = set()
        self._lock = threading.Lock()

    def submit(
        self,
        tool_type: str,
        input_refs: Sequence[str],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Submission:
        """
        Validate a submission, create its job(s) and schedule execution.

        This method:
        1. Resolves the tool handler (unknown tools fail before any job exists)
        2. Rejects an empty input list
        3. Validates the tool options
        4. Creates one job owning every input if the tool combines inputs or
           only one input was given, otherwise one job per input
        5. Runs each job inline or hands it to the deferred path

        Args:
            tool_type: Registry key of the tool
            input_refs: Ordered artifact refs of the uploaded inputs
            options: Free-form tool options payload

        Returns:
            Submission with the created jobs in ``pending`` status

        Raises:
            UnknownTool: If the tool is not registered
            NoInput: If no inputs were supplied
            InvalidOptions: If the options do not validate for the tool
        """
        handler = self.registry.resolve(tool_type)
        refs = list(input_refs)
        if not refs:
            raise NoInput()
        validated = handler.parse_options(options)
        stored_options = validated.model_dump(mode="json", exclude={"tool"})

        if handler.combines_inputs or len(refs) == 1:
            groups = [refs]
        else:
            groups = [[ref] for ref in refs]
        is_batch = len(groups) > 1

        records = tuple(self._create_job(tool_type, group, stored_options) for group in groups)
        logger.info(
            f"Accepted {tool_type} submission: {len(refs)} file(s) -> {len(records)} job(s)"
        )

        for record in records:
            self._dispatch(record.job_id, handler, staggered=is_batch)

        return Submission(jobs=records, is_batch=is_batch)

    def run(self, job_id: str) -> JobRecord:
        """
        Execute a pending job and record its outcome.

        The job is claimed by moving it to ``processing``; a job that is not
        ``pending`` cannot be claimed, so a second run is rejected without
        touching the recorded output or error. Any exception raised by the
        handler is recorded as the job's error detail.

        Args:
            job_id: The job to run

        Returns:
            The job in its terminal state

        Raises:
            JobNotFound: If the job does not exist
            InvalidTransition: If the job already left ``pending``
        """
        record = self.store.update_status(job_id, JobStatus.PROCESSING)
        logger.info(f"[{job_id}] Running {record.tool_type} on {len(record.input_refs)} file(s)")

        ctx = ToolContext(job_id=job_id, artifacts=self.artifacts)
        try:
            handler = self.registry.resolve(record.tool_type)
            options = handler.parse_options(record.options)
            output_ref = handler.execute(record.input_refs, options, ctx)
        except Exception as exc:
            detail = str(exc).strip() or type(exc).__name__
            logger.warning(f"[{job_id}] {record.tool_type} failed: {detail}")
            self.artifacts.remove_job_outputs(job_id)
            return self.store.update_status(job_id, JobStatus.FAILED, error_detail=detail)

        s3_key = self._publish(job_id, output_ref)
        logger.info(f"[{job_id}] {record.tool_type} completed: {output_ref}")
        return self.store.update_status(job_id, JobStatus.COMPLETED, output_ref=output_ref, s3_key=s3_key)

    def get(self, job_id: str) -> JobRecord:
        return self.store.get(job_id)

    def delete(self, job_id: str) -> None:
        """
        Remove a finished job together with its inputs and output.

        Raises:
            JobNotFound: If the job does not exist
            JobBusy: If the job is still pending or processing
        """
        record = self.store.get(job_id)
        if not record.status.is_terminal:
            raise JobBusy(job_id, record.status.value)
        for ref in record.input_refs:
            self.artifacts.delete(ref)
        self.artifacts.delete(record.output_ref)
        self.artifacts.remove_job_outputs(job_id)
        self.store.delete(job_id)
        logger.info(f"[{job_id}] Deleted")

    def recover(self) -> Tuple[int, int]:
        """
        Pick up jobs left behind by a previous process.

        Call once at startup, before new submissions arrive. A job still in
        ``processing`` lost its worker and is failed; a job still in
        ``pending`` lost its deferral and is queued again without delay.

        Returns:
            (number of jobs re-queued, number of jobs failed)
        """
        interrupted = 0
        for record in self.store.list_by_status(JobStatus.PROCESSING):
            try:
                self.store.update_status(record.job_id, JobStatus.FAILED, error_detail=INTERRUPTED_DETAIL)
            except InvalidTransition:
                continue
            self.artifacts.remove_job_outputs(record.job_id)
            interrupted += 1

        pending = self.store.list_by_status(JobStatus.PENDING)
        for record in pending:
            if self.policy.inline:
                self._run_guarded(record.job_id)
            else:
                self._enqueue(record.job_id)

        if pending or interrupted:
            logger.info(f"Recovered {len(pending)} pending job(s), failed {interrupted} interrupted job(s)")
        return len(pending), interrupted

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting background work.

        With ``wait`` the call blocks until scheduled deferrals have fired and
        every started job has finished. Without it, deferrals that have not
        fired are abandoned and their jobs stay ``pending`` until the next
        ``recover``.
        """
        with self._lock:
            timers = list(self._timers)
        for timer in timers:
            if wait:
                timer.join()
            else:
                timer.cancel()
        self._executor.shutdown(wait=wait)

    def _create_job(self, tool_type: str, input_refs: List[str], options: dict) -> JobRecord:
        record = JobRecord(
            job_id=uuid4().hex,
            tool_type=tool_type,
            status=JobStatus.PENDING,
            input_refs=tuple(input_refs),
            created_at=utcnow(),
            options=options,
        )
        return self.store.create(record)

    def _dispatch(self, job_id: str, handler: ToolHandler, staggered: bool) -> None:
        if self.policy.inline or handler.run_inline:
            self.run(job_id)
            return

        delay = self.policy.delay_for(staggered)
        if delay <= 0:
            self._enqueue(job_id)
            return

        logger.debug(f"[{job_id}] Deferred by {delay:.2f}s")
        timer = threading.Timer(delay, self._fire, args=(job_id,))
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()

    def _fire(self, job_id: str) -> None:
        with self._lock:
            self._timers.discard(threading.current_thread())  # type: ignore[arg-type]
        self._enqueue(job_id)

    def _enqueue(self, job_id: str) -> None:
        try:
            self._executor.submit(self._run_guarded, job_id)
        except RuntimeError:
            logger.warning(f"[{job_id}] Scheduler is shut down; job left pending")

    def _run_guarded(self, job_id: str) -> None:
        """Background entry point: a run must never take the worker down with it."""
        try:
            self.run(job_id)
        except Exception:
            logger.exception(f"[{job_id}] Run aborted")

    def _publish(self, job_id: str, output_ref: str) -> Optional[str]:
        """Mirror the output to S3; a mirror failure never fails the job."""
        if not self.publish_outputs:
            return None
        try:
            if not s3_service.is_s3_configured():
                return None
            return s3_service.publish_output(job_id, self.artifacts.resolve(output_ref))
        except Exception:
            logger.exception(f"[{job_id}] Mirroring {output_ref} to S3 failed; serving locally")
            return None
