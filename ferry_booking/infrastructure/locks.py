# ferry_booking/infrastructure/locks.py

import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLock:
    """
    One mutex per key, created on demand and dropped once no thread
    holds or waits for it. Distinct keys never contend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}
        self._waiters: defaultdict[Hashable, int] = defaultdict(int)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] += 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every CapacityLedger in the process.
admission_locks = KeyedLock()
