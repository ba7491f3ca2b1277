"""
Logging configuration for the tagger.

Quiet by default: HTTP client chatter is suppressed unless debugging.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Loggers of libraries that are noisy at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "asyncio")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    else:
        warnings.filterwarnings("default")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.NOTSET)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("tagger").setLevel(logging.DEBUG)
    # httpcore logs every socket event at DEBUG
    logging.getLogger("httpcore").setLevel(logging.INFO)


def configure_ops_log(tool_dir) -> RotatingFileHandler:
    """Configure a persistent operations log for a vault.

    Writes to {tool_dir}/tagger-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on shutdown. A handler for
    another vault is replaced; one for the same vault is reused.
    """
    log_path = Path(tool_dir) / "tagger-ops.log"
    tagger_logger = logging.getLogger("tagger")
    for existing in list(tagger_logger.handlers):
        if isinstance(existing, RotatingFileHandler):
            if existing.baseFilename == os.path.abspath(log_path):
                return existing
            tagger_logger.removeHandler(existing)
            existing.close()

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    tagger_logger.addHandler(handler)
    # Ensure tagger logger allows INFO through even in quiet mode
    if tagger_logger.level == logging.NOTSET or tagger_logger.level > logging.INFO:
        tagger_logger.setLevel(logging.INFO)

    return handler
