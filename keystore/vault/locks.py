"""Per-identity locks.

Writers to the same record serialize; writers to different records don't
contend beyond the brief table lookup. Entries are dropped once unused.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, list[int]]] = {}

    @contextmanager
    def hold(self, identity: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(identity)
            if entry is None:
                entry = self._locks[identity] = (threading.Lock(), [0])
            entry[1][0] += 1
        lock, refs = entry
        try:
            with lock:
                yield
        finally:
            with self._guard:
                refs[0] -= 1
                if refs[0] == 0:
                    del self._locks[identity]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
