"""
Persistence port for tagger state (settings + tagging record).

State is one JSON object, loaded merged over defaults and overwritten on
every save. Concurrent saves are last-write-wins; there is no merge.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from .types import TaggerState

logger = logging.getLogger(__name__)


@runtime_checkable
class StateStore(Protocol):
    """Load and save the persisted tagger state."""

    def load(self) -> TaggerState:
        ...

    def save(self, state: TaggerState) -> None:
        ...


class JsonStateStore:
    """
    State kept in a JSON file (``data.json``).

    A missing file loads as defaults. A corrupt file also loads as
    defaults, with a warning; it is overwritten on the next save.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> TaggerState:
        if not self._path.exists():
            return TaggerState()
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning("Could not read state %s, using defaults: %s", self._path, e)
            return TaggerState()
        if not isinstance(data, dict):
            logger.warning("State %s is not an object, using defaults", self._path)
            return TaggerState()
        return TaggerState.from_dict(data)

    def save(self, state: TaggerState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".data-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class MemoryStateStore:
    """In-memory state store. Keeps a serialized copy so saves are snapshots."""

    def __init__(self, initial: TaggerState | None = None):
        self._data = (initial or TaggerState()).to_dict()
        self.saves = 0

    def load(self) -> TaggerState:
        return TaggerState.from_dict(json.loads(json.dumps(self._data)))

    def save(self, state: TaggerState) -> None:
        self._data = json.loads(json.dumps(state.to_dict()))
        self.saves += 1
