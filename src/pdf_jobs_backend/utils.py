"""
Utility functions for file system operations and filename sanitization.

This module provides helper functions for:
- Sanitizing user-provided filenames for safe filesystem usage
- Ensuring directory creation with proper error handling
- Recognising accepted upload extensions
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9_-]+")
SUFFIX_PATTERN = re.compile(r"\.[a-zA-Z0-9]+")


def sanitize_filename(filename: str, fallback: str = "document") -> str:
    """
    Generate a filesystem-safe filename from an uploaded file's name.

    The stem is reduced to safe characters and the extension is lowercased;
    directory components supplied by the client are discarded.

    Args:
        filename: The original filename (may include a client-side path)
        fallback: Stem to use if sanitization leaves nothing

    Returns:
        A filesystem-safe filename

    Example:
        >>> sanitize_filename("../My Report (final).PDF")
        "My-Report-final.pdf"
        >>> sanitize_filename("@#$.pdf")
        "document.pdf"
    """
    path = Path(filename.replace("\\", "/")).name
    stem, suffix = split_extension(path)
    safe_stem = SANITIZE_PATTERN.sub("-", stem.strip()).strip("-_")
    safe_suffix = suffix.lower() if SUFFIX_PATTERN.fullmatch(suffix) else ""
    return f"{safe_stem or fallback}{safe_suffix}"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def split_extension(filename: str) -> tuple[str, str]:
    """
    Split a filename into stem and extension components.

    Example:
        >>> split_extension("document.pdf")
        ("document", ".pdf")
    """
    path = Path(filename)
    return path.stem, path.suffix


def allowed_pdf_extensions() -> Iterable[str]:
    return [".pdf"]


def is_pdf_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    if filename and split_extension(filename)[1].lower() in allowed_pdf_extensions():
        return True
    return (content_type or "") == "application/pdf"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
