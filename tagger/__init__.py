"""
LLM tagger: annotate notes with tags from a user vocabulary.

Deterministic whole-word matching plus a short tagged summary from a local
Ollama model, with a staleness guard so concurrent edits are never lost.
"""

from .api import Tagger
from .document_store import FilesystemDocumentStore
from .errors import (
    ConcurrentEditDetected,
    DocumentNotFound,
    EmptyContent,
    EmptyVocabulary,
    NetworkError,
    NoModelSelected,
    TaggerError,
)
from .exclusion import should_process
from .scheduler import AutoTagScheduler
from .state_store import JsonStateStore, MemoryStateStore
from .synthesis import synthesize
from .types import DocumentInfo, TaggerState, TagResult
from .untag import untag

__version__ = "0.1.0"

__all__ = [
    "AutoTagScheduler",
    "ConcurrentEditDetected",
    "DocumentInfo",
    "DocumentNotFound",
    "EmptyContent",
    "EmptyVocabulary",
    "FilesystemDocumentStore",
    "JsonStateStore",
    "MemoryStateStore",
    "NetworkError",
    "NoModelSelected",
    "TagResult",
    "Tagger",
    "TaggerError",
    "TaggerState",
    "should_process",
    "synthesize",
    "untag",
]
