"""Thread-safe generator of sequential process identifiers."""

from __future__ import annotations

import threading


class UniqueID:
    """Hands out increasing integer identifiers, starting at 1."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next = 1

    def next(self) -> int:
        """Return a fresh identifier."""
        with self._lock:
            value = self._next
            self._next += 1
            return value