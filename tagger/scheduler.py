"""
Auto-tag scheduler.

Turns document events into tagging runs through two channels:

Edit channel (create/modify)
    Leading-edge debounce per path: the first event fires at once, later
    events for the same path are dropped until the window from that firing
    has passed. Documents open in an editing surface are never tagged from
    this channel.

Close channel
    The scheduler tracks the one document currently open. When that
    changes, the previously open document is tagged after a short settle
    delay (to let a final save land). No debounce, no open check.

The scheduler is driven by explicit calls (``on_document_changed``,
``on_active_document_changed``, ``on_document_closed``, ``tick``), so any
event source can feed it. ``run()`` calls ``tick()`` on a timer.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .api import Tagger
    from .document_store import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0
DEFAULT_SETTLE_SECONDS = 0.5


class AutoTagScheduler:
    """
    Debounces document events and starts tagging tasks.

    Args:
        tagger: Pipeline whose ``auto_tag(path)`` is invoked
        documents: Event source and open-document oracle
        debounce_seconds: Edit-channel window per path
        settle_seconds: Delay before tagging a document that was closed
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        tagger: Tagger,
        documents: DocumentStore,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._tagger = tagger
        self._documents = documents
        self.debounce_seconds = debounce_seconds
        self.settle_seconds = settle_seconds
        self._clock = clock

        self._enabled = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._last_fired: dict[str, float] = {}   # path -> edit-channel firing time
        self._due_closes: dict[str, float] = {}   # path -> time to tag
        self._open_path: Optional[str] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        """Subscribe to document events. Idempotent."""
        if self._enabled:
            return
        self._enabled = True
        self._unsubscribe = self._documents.subscribe(self)
        logger.info("Auto-tagging enabled")

    def disable(self) -> None:
        """Unsubscribe and drop pending work. In-flight tasks finish. Idempotent."""
        if not self._enabled:
            return
        self._enabled = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._last_fired.clear()
        self._due_closes.clear()
        logger.info("Auto-tagging disabled")

    # -------------------------------------------------------------------------
    # Event entry points
    # -------------------------------------------------------------------------

    def on_document_changed(self, path: str) -> Optional[asyncio.Task]:
        """Create/modify event. Returns the started task, if any."""
        if not self._enabled or not self._documents.is_processable(path):
            return None

        now = self._clock()
        last = self._last_fired.get(path)
        if last is not None and now - last < self.debounce_seconds:
            logger.debug("Debounced change on %s", path)
            return None
        self._last_fired[path] = now

        if self._documents.is_open(path):
            logger.debug("Skipping %s - open in editor", path)
            return None
        return self._start(path)

    def on_active_document_changed(self, path: Optional[str]) -> None:
        """The document in the editing surface changed (None: nothing open)."""
        previous = self._open_path
        self._open_path = path
        if previous is not None and previous != path:
            self.on_document_closed(previous)

    def on_document_closed(self, path: str) -> None:
        """Schedule a closed document for tagging after the settle delay."""
        if not self._enabled or not self._documents.is_processable(path):
            return
        self._due_closes[path] = self._clock() + self.settle_seconds
        logger.debug("Scheduled %s for tagging after close", path)

    @property
    def open_path(self) -> Optional[str]:
        return self._open_path

    # -------------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------------

    def tick(self) -> list[asyncio.Task]:
        """Fire due close-triggers and forget expired debounce windows.

        Returns tasks started by this tick.
        """
        now = self._clock()
        expired = [
            p for p, t in self._last_fired.items()
            if now - t >= self.debounce_seconds
        ]
        for path in expired:
            del self._last_fired[path]

        started = []
        if not self._enabled:
            return started
        due = [p for p, t in self._due_closes.items() if t <= now]
        for path in due:
            del self._due_closes[path]
            started.append(self._start(path))
        return started

    def next_due(self) -> Optional[float]:
        """Seconds until the next close-trigger is due, or None."""
        if not self._due_closes:
            return None
        return max(0.0, min(self._due_closes.values()) - self._clock())

    async def run(self, interval: float = 0.25, stop: asyncio.Event | None = None) -> None:
        """Call ``tick()`` periodically until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            self.tick()
            wait = interval
            pending = self.next_due()
            if pending is not None:
                wait = min(wait, pending)
            try:
                await asyncio.wait_for(stop.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def _start(self, path: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._run_one(path), name=f"auto-tag:{path}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_one(self, path: str):
        try:
            return await self._tagger.auto_tag(path)
        except Exception:
            logger.exception("Auto-tag task for %s crashed", path)
            return None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all in-flight tagging tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
