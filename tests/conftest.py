"""
Shared pytest fixtures for tagger tests.

Provides an in-memory document store and a scripted LLM so no Ollama
server or filesystem vault is needed.
"""

from collections.abc import Callable
from typing import Optional

import pytest

from tagger.api import Tagger
from tagger.document_store import ListenerRegistry
from tagger.errors import DocumentNotFound
from tagger.state_store import MemoryStateStore
from tagger.types import DocumentInfo, TaggerState


class MemoryDocumentStore:
    """
    In-memory document store.

    Every write bumps the document's mtime by one millisecond past the
    store clock, so eligibility checks behave like a real filesystem.
    """

    def __init__(self, docs: dict[str, str] | None = None, *, mtime: int = 1_000):
        self._content: dict[str, str] = {}
        self._mtime: dict[str, int] = {}
        self._open: set[str] = set()
        self._events = ListenerRegistry()
        self.clock = mtime
        self.reads = 0
        self.writes: list[tuple[str, str]] = []
        for path, content in (docs or {}).items():
            self.put(path, content)

    def put(self, path: str, content: str, *, mtime: Optional[int] = None) -> None:
        """Set content directly (an outside edit); does not emit events."""
        self.clock += 1
        self._content[path] = content
        self._mtime[path] = mtime if mtime is not None else self.clock

    def content(self, path: str) -> str:
        return self._content[path]

    def is_processable(self, path: str) -> bool:
        return path.endswith(".md")

    def list_documents(self) -> list[DocumentInfo]:
        return [
            DocumentInfo(p, self._mtime[p])
            for p in sorted(self._content)
            if self.is_processable(p)
        ]

    def get_info(self, path: str) -> Optional[DocumentInfo]:
        if path not in self._content:
            return None
        return DocumentInfo(path, self._mtime[path])

    async def read(self, path: str) -> str:
        self.reads += 1
        if path not in self._content:
            raise DocumentNotFound(f"No such document: {path}")
        return self._content[path]

    async def write(self, path: str, content: str) -> None:
        if path not in self._content:
            raise DocumentNotFound(f"No such document: {path}")
        self.writes.append((path, content))
        self.put(path, content)

    def mark_open(self, path: str) -> None:
        self._open.add(path)

    def mark_closed(self, path: str) -> None:
        self._open.discard(path)

    def is_open(self, path: str) -> bool:
        return path in self._open

    def subscribe(self, listener):
        return self._events.subscribe(listener)

    @property
    def listener_count(self) -> int:
        return len(self._events)

    def emit_changed(self, path: str) -> None:
        self._events.emit_changed(path)

    def emit_active_changed(self, path: Optional[str]) -> None:
        self._events.emit_active_changed(path)

    def emit_closed(self, path: str) -> None:
        self._events.emit_closed(path)


class FakeLLM:
    """
    Scripted LLM client.

    Returns ``response`` for every generate() call (or raises ``error``).
    ``on_generate`` runs inside the call, before it returns, to simulate
    edits landing while the request is in flight.
    """

    def __init__(
        self,
        response: str = "A note about things. #extra",
        *,
        models: list[str] | None = None,
        error: Exception | None = None,
        on_generate: Callable[[str, str], None] | None = None,
    ):
        self.response = response
        self.models = models if models is not None else ["llama3.2:latest"]
        self.error = error
        self.on_generate = on_generate
        self.calls: list[tuple[str, str]] = []

    async def generate(self, model: str, prompt: str) -> str:
        self.calls.append((model, prompt))
        if self.on_generate is not None:
            self.on_generate(model, prompt)
        if self.error is not None:
            raise self.error
        return self.response

    async def list_models(self) -> list[str]:
        return list(self.models)


@pytest.fixture
def documents():
    return MemoryDocumentStore({
        "notes/ml.md": "I study ml today.",
        "notes/cooking.md": "Pasta recipes and sauces.",
        "daily.md": "Groceries: ml of milk",
    })


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def state_store():
    return MemoryStateStore(TaggerState(
        selected_model="llama3.2",
        default_tags=["ml", "#python", "recipes"],
    ))


@pytest.fixture
def notices():
    return []


@pytest.fixture
def tagger(documents, state_store, llm, notices):
    return Tagger(documents, state_store, llm, notify=notices.append)
