"""
SQLite database for persistent job storage.

This module is the job store: the single source of truth for job status.
Each call opens its own connection, so the database can be shared by the
request threads and the scheduler's worker threads. Status changes run in a
``BEGIN IMMEDIATE`` transaction that checks the current status and writes
the new status and its output/error fields together, so concurrent readers
only ever observe complete states.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import DuplicateJob, JobNotFound
from .models import JobRecord, JobStatus
from .state_machine import ensure_fields_consistent, ensure_transition_allowed
from .utils import utcnow


# Default database path
DEFAULT_DB_PATH = Path("data/jobs.db")


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO format string."""
    return dt.isoformat() if dt else None


def _deserialize_datetime(s: Optional[str]) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


class JobDatabase:
    """
    SQLite database for job persistence.

    Thread-safe: SQLite handles concurrent access with WAL mode, and status
    transitions take the write lock before reading the current status.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    tool_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    input_refs TEXT NOT NULL,
                    options TEXT,
                    output_ref TEXT,
                    error_detail TEXT,
                    s3_key TEXT,
                    created_at TEXT NOT NULL,
                    completed_at TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_created_at
                ON jobs(created_at DESC)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_status
                ON jobs(status)
            """)

    def create(self, record: JobRecord) -> JobRecord:
        """
        Insert a new job record.

        Args:
            record: The job to persist; normally in ``pending`` status

        Returns:
            The stored record

        Raises:
            DuplicateJob: If a job with the same id already exists
        """
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO jobs (
                        id, tool_type, status, input_refs, options,
                        output_ref, error_detail, s3_key, created_at, completed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.job_id,
                    record.tool_type,
                    record.status.value,
                    json.dumps(list(record.input_refs)),
                    json.dumps(record.options),
                    record.output_ref,
                    record.error_detail,
                    record.s3_key,
                    _serialize_datetime(record.created_at),
                    _serialize_datetime(record.completed_at),
                ))
        except sqlite3.IntegrityError as exc:
            raise DuplicateJob(record.job_id) from exc
        return record

    def get(self, job_id: str) -> JobRecord:
        """
        Retrieve a job by ID.

        Raises:
            JobNotFound: If no job has this id
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()

        if not row:
            raise JobNotFound(job_id)
        return self._row_to_record(row)

    def list_jobs(self) -> List[JobRecord]:
        """List all jobs ordered by creation time (newest first)."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs ORDER BY created_at DESC"
            ).fetchall()

        return [self._row_to_record(row) for row in rows]

    def list_by_status(self, status: JobStatus) -> List[JobRecord]:
        """List jobs in one status, oldest first; used by maintenance sweeps."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE status = ? ORDER BY created_at ASC",
                (JobStatus(status).value,),
            ).fetchall()

        return [self._row_to_record(row) for row in rows]

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        output_ref: Optional[str] = None,
        error_detail: Optional[str] = None,
        s3_key: Optional[str] = None,
    ) -> JobRecord:
        """
        Move a job forward through the state machine.

        The output/error fields and ``completed_at`` are written in the same
        transaction as the status, and only when entering the matching
        terminal status.

        Args:
            job_id: The job ID
            status: New status value
            output_ref: Output artifact ref (required for ``completed``)
            error_detail: Failure reason (required for ``failed``)
            s3_key: Optional S3 key of the mirrored output (``completed`` only)

        Returns:
            The updated record

        Raises:
            JobNotFound: If the job does not exist
            InvalidTransition: If the move is not allowed from the current
                status, including a second terminal transition
            ValueError: If the output/error fields do not match the status
        """
        status = JobStatus(status)
        ensure_fields_consistent(status, output_ref, error_detail)
        if s3_key is not None and status != JobStatus.COMPLETED:
            raise ValueError("s3_key can only be recorded on completion")

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT status FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
            if not row:
                raise JobNotFound(job_id)

            ensure_transition_allowed(job_id, JobStatus(row["status"]), status)

            completed_at = utcnow() if status.is_terminal else None
            conn.execute("""
                UPDATE jobs
                SET status = ?, output_ref = ?, error_detail = ?, s3_key = ?, completed_at = ?
                WHERE id = ?
            """, (
                status.value,
                output_ref,
                error_detail,
                s3_key,
                _serialize_datetime(completed_at),
                job_id,
            ))
            row = conn.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()

        return self._row_to_record(row)

    def delete(self, job_id: str) -> bool:
        """
        Delete a job record.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            return cursor.rowcount > 0

    def count(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0]

    def _row_to_record(self, row: sqlite3.Row) -> JobRecord:
        """Convert a database row to a job record."""
        options: Dict[str, Any] = json.loads(row["options"] or "{}")
        return JobRecord(
            job_id=row["id"],
            tool_type=row["tool_type"],
            status=JobStatus(row["status"]),
            input_refs=tuple(json.loads(row["input_refs"])),
            created_at=_deserialize_datetime(row["created_at"]),
            options=options,
            output_ref=row["output_ref"],
            error_detail=row["error_detail"],
            s3_key=row["s3_key"],
            completed_at=_deserialize_datetime(row["completed_at"]),
        )
