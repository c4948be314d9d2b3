"""Changed line ranges derived from structured diff hunks."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .models import FileChangedRanges, FileDiff, Hunk, LineRange

logger = logging.getLogger(__name__)

PARSEABLE_EXTENSIONS: Set[str] = {
    ".ts", ".tsx", ".js", ".jsx", ".mts", ".mjs", ".cts", ".cjs",
}

_DIFF_PREFIX_RE = re.compile(r"^[ab]/")


def hunk_to_range(hunk: Hunk) -> Optional[LineRange]:
    """Return the post-image span of *hunk*, or None for an empty hunk."""
    if hunk.line_count == 0:
        return None
    return LineRange(hunk.start_line, hunk.start_line + hunk.line_count - 1)


def merge_ranges(ranges: Iterable[LineRange]) -> List[LineRange]:
    """Merge overlapping or adjacent ranges into a sorted, disjoint list."""
    ordered = sorted(ranges, key=lambda r: (r.start, r.end))
    if not ordered:
        return []

    merged: List[LineRange] = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end + 1:
            merged[-1] = LineRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def range_intersects_changes(range_: LineRange, changed_ranges: Sequence[LineRange]) -> bool:
    """True when *range_* overlaps or touches any changed range."""
    return any(
        range_.start <= changed.end and range_.end >= changed.start
        for changed in changed_ranges
    )


def extract_changed_ranges(file_diff: FileDiff) -> List[LineRange]:
    ranges: List[LineRange] = []
    for index, raw in enumerate(file_diff.hunks):
        try:
            hunk = Hunk.from_raw(raw)
        except ValueError as exc:
            logger.debug("Skipping hunk %d of %s: %s", index, file_diff.file_path, exc)
            continue
        line_range = hunk_to_range(hunk)
        if line_range is not None:
            ranges.append(line_range)
    return merge_ranges(ranges)


def normalize_diff_path(raw_path: str) -> str:
    return _DIFF_PREFIX_RE.sub("", raw_path or "")


def diffs_to_changed_ranges(file_diffs: Iterable[FileDiff]) -> List[FileChangedRanges]:
    """Convert file diffs to per-file merged ranges.

    Files without a path or without any added lines are dropped.  Repeated
    entries for the same path (e.g. staged and unstaged patches) are combined
    into one entry at the position the path was first seen.
    """
    by_path: Dict[str, List[LineRange]] = {}
    for file_diff in file_diffs:
        file_path = normalize_diff_path(file_diff.file_path)
        if not file_path:
            continue
        ranges = extract_changed_ranges(file_diff)
        if not ranges:
            continue
        by_path.setdefault(file_path, []).extend(ranges)

    return [
        FileChangedRanges(file_path=path, changed_ranges=merge_ranges(ranges))
        for path, ranges in by_path.items()
    ]


def changed_file_paths(changed_files: Iterable[FileChangedRanges]) -> Set[str]:
    return {f.file_path for f in changed_files}


def is_parseable_file(file_path: str) -> bool:
    """Check whether *file_path* is a TypeScript/JavaScript file we can parse."""
    dot = file_path.rfind(".")
    if dot == -1:
        return False
    return file_path[dot:].lower() in PARSEABLE_EXTENSIONS
