"""
Document store: the port through which the pipeline reads and writes
documents, and a filesystem implementation over a folder of notes.

The store owns documents; the tagger only reads and writes through it.
Stores emit change notifications to subscribed listeners:

- ``on_document_changed(path)`` for create and modify
- ``on_active_document_changed(path | None)`` when the document open in
  the editing surface changes
- ``on_document_closed(path)`` when a document stops being open
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .errors import DocumentNotFound
from .types import DocumentInfo

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentListener(Protocol):
    """Receives change notifications from a document store."""

    def on_document_changed(self, path: str) -> None:
        ...

    def on_active_document_changed(self, path: Optional[str]) -> None:
        ...

    def on_document_closed(self, path: str) -> None:
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """
    Storage for the documents being tagged.

    Reads and writes are async (they may suspend); metadata queries are
    synchronous and answered from what the store already knows.
    """

    def list_documents(self) -> list[DocumentInfo]:
        """All documents of a processable type."""
        ...

    def get_info(self, path: str) -> Optional[DocumentInfo]:
        """Metadata for one document, or None if it doesn't exist."""
        ...

    def is_processable(self, path: str) -> bool:
        """True if the path has a type the tagger handles."""
        ...

    async def read(self, path: str) -> str:
        ...

    async def write(self, path: str, content: str) -> None:
        """Replace the full content of the document."""
        ...

    def is_open(self, path: str) -> bool:
        """True if the document is open in an editing surface."""
        ...

    def subscribe(self, listener: DocumentListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        ...


class ListenerRegistry:
    """Fan-out of store events to subscribed listeners."""

    def __init__(self):
        self._listeners: list[DocumentListener] = []

    def subscribe(self, listener: DocumentListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._listeners)

    def emit_changed(self, path: str) -> None:
        for listener in list(self._listeners):
            listener.on_document_changed(path)

    def emit_active_changed(self, path: Optional[str]) -> None:
        for listener in list(self._listeners):
            listener.on_active_document_changed(path)

    def emit_closed(self, path: str) -> None:
        for listener in list(self._listeners):
            listener.on_document_closed(path)


# Directories never scanned (tool state, VCS, editor config)
_SKIP_DIRS = frozenset({".tagger", ".git", ".obsidian", ".trash"})


class FilesystemDocumentStore:
    """
    Documents as files under a root directory.

    Paths are relative POSIX paths from the root. Hidden directories are
    skipped. Writes are atomic (temp file + rename), so a reader never sees
    a partially written document.

    There is no editor to ask what is open, so "open" is the union of
    documents marked open explicitly and documents with an editor lock
    file beside them (vim ``.name.swp``, emacs ``.#name``).
    """

    def __init__(self, root: Path, extensions: Iterable[str] = ("md",)):
        self.root = Path(root).expanduser().resolve()
        self.extensions = frozenset(e.lstrip(".").lower() for e in extensions)
        self._events = ListenerRegistry()
        self._open: set[str] = set()
        self._active: Optional[str] = None
        self._snapshot: Optional[dict[str, int]] = None
        self._locked: set[str] = set()   # documents with a lock file at last poll

    # -- paths -------------------------------------------------------------

    def _abs(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root):
            raise ValueError(f"Path escapes document root: {path}")
        return resolved

    def _rel(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def is_processable(self, path: str) -> bool:
        _, ext = os.path.splitext(path)
        return ext[1:].lower() in self.extensions

    # -- metadata ----------------------------------------------------------

    def list_documents(self) -> list[DocumentInfo]:
        docs = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in _SKIP_DIRS and not d.startswith(".")
            )
            for name in sorted(filenames):
                if name.startswith(".") or not self.is_processable(name):
                    continue
                full = Path(dirpath) / name
                if full.is_symlink():
                    continue
                try:
                    mtime = full.stat().st_mtime_ns // 1_000_000
                except OSError:
                    continue  # removed while scanning
                docs.append(DocumentInfo(self._rel(full), mtime))
        return docs

    def get_info(self, path: str) -> Optional[DocumentInfo]:
        try:
            st = self._abs(path).stat()
        except (OSError, ValueError):
            return None
        return DocumentInfo(path, st.st_mtime_ns // 1_000_000)

    # -- content -----------------------------------------------------------

    def _read_sync(self, path: str) -> str:
        try:
            return self._abs(path).read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise DocumentNotFound(f"No such document: {path}") from e

    def _write_sync(self, path: str, content: str) -> None:
        target = self._abs(path)
        if not target.exists():
            raise DocumentNotFound(f"No such document: {path}")
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".tagger-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.chmod(tmp, target.stat().st_mode & 0o7777)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def read(self, path: str) -> str:
        return await asyncio.to_thread(self._read_sync, path)

    async def write(self, path: str, content: str) -> None:
        await asyncio.to_thread(self._write_sync, path, content)

    # -- editing surface ---------------------------------------------------

    def mark_open(self, path: str) -> None:
        self._open.add(path)

    def mark_closed(self, path: str) -> None:
        if path in self._open:
            self._open.discard(path)
            self._events.emit_closed(path)

    def set_active(self, path: Optional[str]) -> None:
        """Set the document in the editing surface and notify listeners."""
        if path == self._active:
            return
        if self._active is not None:
            self._open.discard(self._active)
        self._active = path
        if path is not None:
            self._open.add(path)
        self._events.emit_active_changed(path)

    @property
    def active(self) -> Optional[str]:
        return self._active

    def _has_lock_file(self, path: str) -> bool:
        target = self.root / path
        name = target.name
        return (
            (target.parent / f".{name}.swp").exists()
            or (target.parent / f".#{name}").exists()
        )

    def is_open(self, path: str) -> bool:
        return path in self._open or self._has_lock_file(path)

    # -- events ------------------------------------------------------------

    def subscribe(self, listener: DocumentListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    def poll(self) -> list[str]:
        """Compare mtimes against the last scan and emit change events.

        Also emits a close event for each document whose editor lock file
        went away since the last scan. The first call only records a
        baseline. Returns changed paths.
        """
        current = {d.path: d.mtime for d in self.list_documents()}
        locked = {path for path in current if self._has_lock_file(path)}
        previous, was_locked = self._snapshot, self._locked
        self._snapshot, self._locked = current, locked
        if previous is None:
            return []

        changed = [
            path for path, mtime in current.items()
            if previous.get(path) != mtime
        ]
        for path in changed:
            logger.debug("Detected change: %s", path)
            self._events.emit_changed(path)

        for path in sorted(was_locked - locked):
            if path in current and path not in self._open:
                logger.debug("Editor released %s", path)
                self._events.emit_closed(path)
        return changed

    async def watch(self, interval: float = 1.0, stop: asyncio.Event | None = None) -> None:
        """Poll for changes every ``interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        self.poll()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if not stop.is_set():
                self.poll()
