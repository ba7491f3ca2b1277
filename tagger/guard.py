"""
Optimistic-concurrency guard for document rewrites.

The document is read before an async transform (the LLM call) and read
again after it. The result is written only if the content is unchanged;
otherwise the transform worked from stale input and applying it would
discard the user's edit.

This is best-effort: a write landing between the re-read and our write
can still be lost. Locking the document is not possible from outside the
store.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from .errors import ConcurrentEditDetected, EmptyContent

logger = logging.getLogger(__name__)


async def guarded_update(
    documents,
    path: str,
    transform: Callable[[str], Awaitable[str]],
) -> str | None:
    """
    Apply ``transform`` to a document unless it changes underneath us.

    Args:
        documents: Document store (read/write)
        path: Document path
        transform: Async function from current content to new content

    Returns:
        The written content, or None when the transform changed nothing
        (no write is issued).

    Raises:
        EmptyContent: If the document has no non-whitespace content
        ConcurrentEditDetected: If the document changed during transform
    """
    initial = await documents.read(path)
    if not initial.strip():
        raise EmptyContent(path)

    updated = await transform(initial)
    if updated == initial:
        return None

    current = await documents.read(path)
    if current != initial:
        logger.info("Concurrent edit on %s; discarding tagging result", path)
        raise ConcurrentEditDetected(path)

    await documents.write(path, updated)
    return updated
