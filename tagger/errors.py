"""
Error types and error logging for the tagger.

Pipeline errors derive from TaggerError so the CLI can show a clean
message; anything else gets its full stack trace logged to file.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class TaggerError(Exception):
    """Base class for expected, user-reportable failures."""


class NoModelSelected(TaggerError):
    """No Ollama model is configured, so synthesis refuses to run."""

    def __init__(self, message: str = "No Ollama model selected"):
        super().__init__(message)


class EmptyVocabulary(TaggerError):
    """The tag vocabulary is empty."""

    def __init__(self, message: str = "No tags configured"):
        super().__init__(message)


class NetworkError(TaggerError):
    """The LLM call failed or returned a body that is not JSON."""


class DocumentNotFound(TaggerError):
    """The document store has no document at the given path."""


class EmptyContent(TaggerError):
    """Document has no non-whitespace content. Skipped silently."""

    def __init__(self, path: str):
        super().__init__(f"{path} is empty")
        self.path = path


class ConcurrentEditDetected(TaggerError):
    """The document changed while the LLM call was in flight.

    Raised by the staleness guard; the synthesized result is discarded.
    """

    def __init__(self, path: str):
        super().__init__(f"{path} changed during tagging; result discarded")
        self.path = path


def _error_log_path(tool_dir: Path | None = None) -> Path:
    """Resolve error log path: the given tool directory, then TAGGER_VAULT."""
    if tool_dir is not None:
        return Path(tool_dir) / "tagger-errors.log"
    vault = os.environ.get("TAGGER_VAULT")
    if vault:
        return Path(vault) / ".tagger" / "tagger-errors.log"
    return Path.home() / ".tagger" / "tagger-errors.log"


def log_exception(exc: Exception, context: str = "", tool_dir: Path | None = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        tool_dir: Vault tool directory (default: from TAGGER_VAULT, else ~/.tagger)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(tool_dir)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Error log is best-effort
    return log_path
