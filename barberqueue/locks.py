# barberqueue/locks.py

import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Hashable, List, Tuple

_registry_lock = threading.Lock()
# key -> [lock, holders and waiters]; entries go away when the count hits zero
_locks: Dict[Hashable, List] = {}


def day_key(barber_id: int, day: date) -> Tuple[str, int, str]:
    return ("day", barber_id, day.isoformat())


def barber_key(barber_id: int) -> Tuple[str, int, str]:
    return ("barber", barber_id, "")


def _checkout(key: Hashable) -> threading.RLock:
    with _registry_lock:
        entry = _locks.get(key)
        if entry is None:
            entry = [threading.RLock(), 0]
            _locks[key] = entry
        entry[1] += 1
        return entry[0]


def _checkin(key: Hashable):
    with _registry_lock:
        entry = _locks[key]
        entry[1] -= 1
        if entry[1] == 0:
            del _locks[key]


@contextmanager
def locked(*keys: Tuple[str, int, str]):
    """Hold the per-key locks for the duration of the block.

    Keys are taken in sorted order so multi-day operations cannot deadlock
    against single-day ones.
    """
    acquired = []
    try:
        for key in sorted(set(keys)):
            lock = _checkout(key)
            try:
                lock.acquire()
            except BaseException:
                _checkin(key)
                raise
            acquired.append((key, lock))
        yield
    finally:
        for key, lock in reversed(acquired):
            lock.release()
            _checkin(key)
