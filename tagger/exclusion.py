"""
Exclusion and eligibility filtering.

Pure functions: decide from in-memory data whether a document should be
(re)processed. No I/O.
"""

import functools
import re
from collections.abc import Iterable, Mapping

from .types import DocumentInfo


@functools.lru_cache(maxsize=256)
def _wildcard_regex(pattern: str) -> re.Pattern:
    """Compile a ``*`` wildcard to a regex.

    Matches the whole path, a path suffix, or an internal run of segments:
    ``templates/*`` hits ``templates/x.md`` and ``notes/templates/x.md``
    but not ``notes/templates2/x.md``.
    """
    body = ".*".join(re.escape(part) for part in pattern.lower().split("*"))
    return re.compile(rf"(?:^|/){body}(?:$|/)")


def matches_pattern(path: str, pattern: str) -> bool:
    """True if a single exclusion pattern matches the path (case-insensitive)."""
    pattern = pattern.strip()
    if not pattern:
        return False

    lower_path = path.lower()
    if "*" in pattern:
        return _wildcard_regex(pattern).search(lower_path) is not None

    # Literal: exact file name (with or without extension) or a folder segment
    literal = pattern.lower().strip("/")
    info = DocumentInfo(lower_path, 0)
    if literal in (info.name, info.basename):
        return True
    folders = lower_path.split("/")[:-1]
    if "/" in literal:
        return f"/{literal}/" in f"/{'/'.join(folders)}/"
    return literal in folders


def is_excluded(path: str, patterns: Iterable[str]) -> bool:
    """True if any pattern matches. First match short-circuits."""
    return any(matches_pattern(path, p) for p in patterns)


def should_process(
    document: DocumentInfo,
    exclude_patterns: Iterable[str],
    tagged_files: Mapping[str, int],
) -> bool:
    """
    Decide whether a document qualifies for (re)processing.

    Excluded documents never qualify. Otherwise a document qualifies if it
    was never tagged, or was modified after its last successful tagging.
    """
    if is_excluded(document.path, exclude_patterns):
        return False
    last_tagged = tagged_files.get(document.path)
    if last_tagged is None:
        return True
    return document.mtime > last_tagged
