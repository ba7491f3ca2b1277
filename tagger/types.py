"""
Data types for the tagger.
"""

import logging
import posixpath
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    """Current UTC timestamp as ISO-8601 with millisecond precision and 'Z'.

    This is the format written into the tagged-block header, e.g.
    ``2025-01-31T09:15:02.417Z``.
    """
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def ms_to_iso(ms: int) -> str:
    """Render an epoch-milliseconds value as an ISO-8601 UTC string."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_tag_list(text: str) -> list[str]:
    """Split a comma-separated tag list, dropping blanks."""
    return [t.strip() for t in text.split(",") if t.strip()]


@dataclass(frozen=True)
class DocumentInfo:
    """
    A document as seen by the pipeline.

    Attributes:
        path: Stable relative POSIX path (e.g. ``notes/ml.md``)
        mtime: Last modification time, milliseconds since epoch
    """
    path: str
    mtime: int

    @property
    def name(self) -> str:
        """File name including extension."""
        return posixpath.basename(self.path)

    @property
    def basename(self) -> str:
        """File name without extension."""
        stem, _ = posixpath.splitext(self.name)
        return stem

    @property
    def extension(self) -> str:
        """Lowercase extension without the dot ('' if none)."""
        _, ext = posixpath.splitext(self.name)
        return ext[1:].lower()


# Keys of the persisted state object. camelCase so a data.json written by
# the editor plugin can be read unchanged.
_STATE_KEYS = {
    "selected_model": "selectedModel",
    "default_tags": "defaultTags",
    "auto_add_tags": "autoAddTags",
    "tagged_files": "taggedFiles",
    "exclude_patterns": "excludePatterns",
}


def _clean_record(raw) -> dict[str, int]:
    """Coerce a persisted tagging record, dropping entries that aren't timestamps."""
    if not isinstance(raw, dict):
        logger.warning("Ignoring tagging record of type %s", type(raw).__name__)
        return {}
    record = {}
    for path, ts in raw.items():
        try:
            record[str(path)] = int(ts)
        except (TypeError, ValueError):
            logger.warning("Dropping tagging record entry %s: bad timestamp %r", path, ts)
    return record


@dataclass
class TaggerState:
    """
    Persisted settings plus the tagging record.

    Attributes:
        selected_model: Ollama model used for summaries (None = not chosen)
        default_tags: Tag vocabulary, in declaration order
        auto_add_tags: Whether the auto-tag scheduler is active
        tagged_files: Path -> epoch ms of the last successful tagging write
        exclude_patterns: Literal names or ``*`` wildcards to skip
    """
    selected_model: Optional[str] = None
    default_tags: list[str] = field(default_factory=list)
    auto_add_tags: bool = False
    tagged_files: dict[str, int] = field(default_factory=dict)
    exclude_patterns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to the JSON-ready persisted shape."""
        return {
            "selectedModel": self.selected_model,
            "defaultTags": list(self.default_tags),
            "autoAddTags": self.auto_add_tags,
            "taggedFiles": dict(self.tagged_files),
            "excludePatterns": list(self.exclude_patterns),
        }

    @classmethod
    def from_dict(cls, d: dict | None) -> "TaggerState":
        """Deserialize, merging over defaults. Unknown keys are ignored."""
        state = cls()
        if not d:
            return state
        for attr, key in _STATE_KEYS.items():
            if key in d and d[key] is not None:
                setattr(state, attr, d[key])
        state.default_tags = [str(t) for t in state.default_tags]
        state.exclude_patterns = [str(p) for p in state.exclude_patterns]
        state.tagged_files = _clean_record(state.tagged_files)
        state.auto_add_tags = bool(state.auto_add_tags)
        return state


@dataclass(frozen=True)
class TagResult:
    """Outcome of one tagging or untagging attempt on a document."""
    path: str
    status: str  # see STATUS_* constants
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status in (STATUS_TAGGED, STATUS_UNTAGGED)


STATUS_TAGGED = "tagged"
STATUS_UNTAGGED = "untagged"
STATUS_UNCHANGED = "unchanged"      # nothing to add / nothing to strip
STATUS_SKIPPED = "skipped"          # not modified since last tagging
STATUS_EXCLUDED = "excluded"
STATUS_EMPTY = "empty"
STATUS_STALE = "stale"              # concurrent edit during the LLM call
STATUS_FAILED = "failed"


@dataclass
class BatchReport:
    """Summary of a sweep over many documents."""
    total: int = 0
    results: list[TagResult] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def modified(self) -> int:
        return sum(1 for r in self.results if r.changed)

    @property
    def failed(self) -> list[TagResult]:
        return [r for r in self.results if r.status == STATUS_FAILED]
