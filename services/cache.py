"""
Value Cache Service

Time-boxed in-memory memoization. ``Cacheable`` holds a single value (one
per source, used for the parsed document), ``Cache`` is the keyed variant.
Expiry is checked lazily on access; there is no background eviction.
"""

import threading
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar, Union

T = TypeVar("T")

Clock = Callable[[], float]
TTL = Union[float, int, timedelta]


def _seconds(ttl: TTL) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


class ReadWriteLock:
    """Shared-read / exclusive-write lock, writers are preferred once waiting"""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Cacheable(Generic[T]):
    """
    Single-slot cache cell with an optional time-to-live

    A value is present when it was set and its expiry instant (if any) is
    still strictly in the future.
    """

    def __init__(self, clock: Clock = time.monotonic):
        self._clock = clock
        self._lock = ReadWriteLock()
        self._value: Optional[T] = None
        self._is_set = False
        self._expires_at: Optional[float] = None

    def set(self, value: T) -> None:
        """Store a value that never expires"""
        with self._lock.write():
            self._value = value
            self._expires_at = None
            self._is_set = True

    def set_with_ttl(self, value: T, ttl: TTL) -> None:
        """Store a value that expires ``ttl`` seconds from now"""
        with self._lock.write():
            self._value = value
            self._expires_at = self._clock() + _seconds(ttl)
            self._is_set = True

    def get(self) -> Tuple[Optional[T], bool]:
        with self._lock.read():
            if not self._present():
                return None, False
            return self._value, True

    def is_set(self) -> bool:
        with self._lock.read():
            return self._present()

    def _present(self) -> bool:
        if not self._is_set:
            return False
        return self._expires_at is None or self._expires_at > self._clock()


class Cache(Generic[T]):
    """Keyed multi-entry cache with the same expiry rules as ``Cacheable``"""

    def __init__(self, clock: Clock = time.monotonic):
        self._clock = clock
        self._lock = ReadWriteLock()
        self._entries: Dict[str, Tuple[T, Optional[float]]] = {}

    def set(self, key: str, value: T) -> None:
        with self._lock.write():
            self._entries[key] = (value, None)

    def set_with_ttl(self, key: str, value: T, ttl: TTL) -> None:
        self.set_with_ttl_end(key, value, self._clock() + _seconds(ttl))

    def set_with_ttl_end(self, key: str, value: T, ttl_end: float) -> None:
        """Store a value expiring at ``ttl_end``, an instant on this cache's clock"""
        with self._lock.write():
            self._entries[key] = (value, ttl_end)

    def get(self, key: str) -> Tuple[Optional[T], bool]:
        with self._lock.read():
            entry = self._entries.get(key)
            if entry is None or not self._alive(entry):
                return None, False
            return entry[0], True

    def is_set(self, key: str) -> bool:
        with self._lock.read():
            entry = self._entries.get(key)
            return entry is not None and self._alive(entry)

    def remove(self, key: str) -> bool:
        """Drop an entry, returns False when the key was never stored"""
        with self._lock.write():
            return self._entries.pop(key, None) is not None

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def _alive(self, entry: Tuple[T, Optional[float]]) -> bool:
        expires_at = entry[1]
        return expires_at is None or expires_at > self._clock()
