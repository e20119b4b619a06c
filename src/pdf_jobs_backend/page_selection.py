"""
Page selection grammar shared by the split, rotate and delete-pages tools.

A selection spec is a comma-separated list of tokens, each either a single
1-based page number ("4") or an inclusive range ("2-6"). Parsing is lenient:
tokens that are out of range or not numeric are dropped rather than rejected,
and an empty result is returned as an empty list so callers can decide
whether "no pages" is a user error.
"""

from __future__ import annotations

import re
from typing import List, Optional

_WHITESPACE = re.compile(r"\s+")
_LEADING_INT = re.compile(r"\+?\d+")


def _leading_int(token: str) -> Optional[int]:
    """Read the leading integer of ``token`` ("12abc" -> 12), or None."""
    match = _LEADING_INT.match(token)
    return int(match.group()) if match else None


def parse_selection(spec: str, page_count: int) -> List[int]:
    """
    Parse a page selection spec into an ascending, de-duplicated page list.

    Range endpoints are clamped into ``[1, page_count]``; when the clamped
    start exceeds the clamped end the range collapses to the start page, so
    "7-3" selects only page 7.

    Args:
        spec: Raw selection string, e.g. "1,3,5-7,10"
        page_count: Number of pages in the target document

    Returns:
        Sorted list of unique page numbers, possibly empty

    Example:
        >>> parse_selection("1,3,5-7,10", 10)
        [1, 3, 5, 6, 7, 10]
        >>> parse_selection("7-3", 10)
        [7]
    """
    if not spec or page_count < 1:
        return []

    pages = set()
    for token in _WHITESPACE.sub("", spec).split(","):
        if "-" in token:
            fields = token.split("-")
            start, end = _leading_int(fields[0]), _leading_int(fields[1])
            if start is None or end is None:
                continue
            range_start = max(1, min(start, page_count))
            range_end = max(range_start, min(end, page_count))
            pages.update(range(range_start, range_end + 1))
        else:
            page = _leading_int(token)
            if page is not None and 1 <= page <= page_count:
                pages.add(page)

    return sorted(pages)
