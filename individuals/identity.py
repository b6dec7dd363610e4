"""Explicit identity allocation for agents inside one simulation instance."""

from __future__ import annotations

import threading


class IdAllocator:
    """Hands out consecutive integer ids.

    One allocator is owned by whichever component creates identities (usually a
    single simulation instance), so concurrent evaluations never share a
    counter.
    """

    def __init__(self, start: int = 0) -> None:
        self._start = int(start)
        self._next = int(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def peek(self) -> int:
        """Return the id the next call to ``next_id`` will produce."""
        with self._lock:
            return self._next

    def reset(self) -> None:
        with self._lock:
            self._next = self._start
