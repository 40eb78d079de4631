"""
File persistence helpers shared by the vector store and the embedding caches.

Writes go to a temp file in the target directory and are renamed over the
target, so a reader never observes a half-written file.

The embedding cache and the offline pattern index change on every query, so
they persist through a DebouncedJsonFile: changes mark it dirty and the file
is rewritten at most once per interval, plus on an explicit `flush()`.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, payload: object, indent: int | None = None) -> None:
    """Write JSON to a temp file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=indent)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def read_json(path: Path) -> object:
    """Load a JSON document from disk."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def quarantine_file(path: Path) -> Path | None:
    """
    Move an unreadable file aside so the next persist cannot overwrite it.

    The file becomes `.<name>.corrupt-<unix time>` in the same directory.
    Returns the new path, or None when the move failed.
    """
    target = path.with_name(f".{path.name}.corrupt-{int(time.time())}")
    try:
        path.replace(target)
    except OSError as e:
        logger.error(f"Could not move unreadable file {path}: {e}")
        return None
    logger.warning(f"Moved unreadable file {path.name} to {target.name}")
    return target


class DebouncedJsonFile:
    """
    A JSON file rewritten at most once per `interval_sec`.

    The owner calls `mark_dirty()` after changing its state (usually under its
    own lock) and `maybe_flush()` once that lock is released. `snapshot` is
    called to build the payload and must take the owner's lock itself, so
    serialisation and disk I/O never happen while the owner's lock is held.

    The first change is written straight away; later ones within the interval
    wait for the next change after it or for `flush()`. An interval of 0
    writes on every change.
    """

    def __init__(
        self,
        path: Path,
        snapshot: Callable[[], object],
        interval_sec: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        label: str = "file",
    ):
        self.path = path
        self.interval_sec = interval_sec
        self._snapshot = snapshot
        self._clock = clock
        self._label = label
        self._write_lock = threading.Lock()
        self._dirty = False
        self._last_write: float | None = None
        self.writes = 0

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def maybe_flush(self) -> bool:
        """Write if dirty and the interval has passed since the last write."""
        if not self._dirty:
            return True
        if self._last_write is not None and self._clock() - self._last_write < self.interval_sec:
            return True
        return self.flush()

    def flush(self) -> bool:
        """Write now if dirty. Returns False when the write failed."""
        with self._write_lock:
            if not self._dirty:
                return True
            # Cleared before the snapshot: a change racing with it re-marks
            self._dirty = False
            payload = self._snapshot()
            try:
                atomic_write_json(self.path, payload)
            except (OSError, TypeError, ValueError) as e:
                self._dirty = True
                logger.error(f"Could not persist {self._label} {self.path}: {e}")
                return False
            self._last_write = self._clock()
            self.writes += 1
            return True
