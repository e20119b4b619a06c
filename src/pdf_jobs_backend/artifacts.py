"""
Filesystem storage for uploaded inputs and produced outputs.

Artifacts are addressed by opaque refs: POSIX paths relative to the storage
root, e.g. ``uploads/3f2a.../report.pdf`` or ``outputs/<job_id>/merged.pdf``.
Refs never escape the root; resolving one that does, or one whose file is
gone, raises ArtifactNotFound.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional
from uuid import uuid4

from .errors import ArtifactNotFound
from .utils import ensure_directory, sanitize_filename

logger = logging.getLogger(__name__)

UPLOADS_DIR = "uploads"
OUTPUTS_DIR = "outputs"


class ArtifactStore:
    """
    Owns the ``uploads/`` and ``outputs/`` trees under a single root.

    Attributes:
        root: Base directory for all artifacts
        upload_root: Directory holding one sub-directory per upload
        output_root: Directory holding one sub-directory per job
    """

    def __init__(self, root: Path) -> None:
        self.root = ensure_directory(Path(root)).resolve()
        self.upload_root = ensure_directory(self.root / UPLOADS_DIR)
        self.output_root = ensure_directory(self.root / OUTPUTS_DIR)

    def new_upload_path(self, filename: str) -> Path:
        """Reserve a fresh, collision-free location for an uploaded file."""
        upload_dir = ensure_directory(self.upload_root / uuid4().hex)
        return upload_dir / sanitize_filename(filename or "document.pdf")

    def output_path(self, job_id: str, filename: str) -> Path:
        return ensure_directory(self.output_root / job_id) / sanitize_filename(filename, fallback="output")

    def work_dir(self, job_id: str, name: str = "work") -> Path:
        """Scratch directory inside the job's output directory."""
        return ensure_directory(self.output_root / job_id / name)

    def ref_for(self, path: Path) -> str:
        resolved = Path(path).resolve()
        try:
            relative = resolved.relative_to(self.root)
        except ValueError as exc:
            raise ValueError(f"{path} is outside the artifact root") from exc
        return relative.as_posix()

    def resolve(self, ref: str) -> Path:
        """
        Map a ref back to an existing file.

        Raises:
            ArtifactNotFound: If the ref is malformed, escapes the root, or
                points at a file that no longer exists
        """
        relative = PurePosixPath(ref)
        if relative.is_absolute() or ".." in relative.parts:
            raise ArtifactNotFound(ref)
        path = (self.root / Path(*relative.parts)).resolve()
        if self.root not in path.parents or not path.is_file():
            raise ArtifactNotFound(ref)
        return path

    def exists(self, ref: str) -> bool:
        try:
            self.resolve(ref)
        except ArtifactNotFound:
            return False
        return True

    def delete(self, ref: Optional[str]) -> bool:
        """Remove an artifact and any directory it leaves empty."""
        if not ref:
            return False
        try:
            path = self.resolve(ref)
        except ArtifactNotFound:
            return False
        path.unlink()
        self._remove_empty_parents(path.parent)
        return True

    def remove_job_outputs(self, job_id: str) -> None:
        shutil.rmtree(self.output_root / job_id, ignore_errors=True)

    def prune(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """
        Delete files whose modification time is older than ``max_age_seconds``.

        Returns:
            Number of files removed
        """
        cutoff = (now if now is not None else time.time()) - max_age_seconds
        removed = 0
        for path in self._iter_files():
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    self._remove_empty_parents(path.parent)
                    removed += 1
                    logger.info(f"Cleaned up old file: {path}")
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error(f"Error cleaning up file {path}: {exc}")
        return removed

    def _iter_files(self) -> Iterator[Path]:
        for base in (self.upload_root, self.output_root):
            yield from [path for path in base.rglob("*") if path.is_file()]

    def _remove_empty_parents(self, directory: Path) -> None:
        stop = {self.root, self.upload_root, self.output_root}
        while directory not in stop and self.root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                break
            directory = directory.parent
