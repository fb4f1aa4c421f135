"""
Per-identity locking so one identity has at most one chat turn in flight.

Keys: lock:identity:{identity_id}:chat. Locks live in this process; the
registry entry is dropped once no thread holds or waits on it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Generator, Tuple

from .exceptions import ConflictError

LOCK_TIMEOUT_SECONDS = 30.0

_registry_guard = threading.Lock()
# key -> (lock, number of holders + waiters)
_registry: Dict[str, Tuple[threading.Lock, int]] = {}


def _checkout(key: str) -> threading.Lock:
    with _registry_guard:
        lock, users = _registry.get(key, (None, 0))
        if lock is None:
            lock = threading.Lock()
        _registry[key] = (lock, users + 1)
        return lock


def _release(key: str) -> None:
    with _registry_guard:
        lock, users = _registry[key]
        if users <= 1:
            del _registry[key]
        else:
            _registry[key] = (lock, users - 1)


@contextmanager
def acquire_lock(key: str, timeout_seconds: float = LOCK_TIMEOUT_SECONDS) -> Generator[None, None, None]:
    """
    Acquire a named lock (e.g. lock:identity:{id}:chat).
    Blocks until acquired; raises ConflictError after timeout_seconds.
    """
    lock = _checkout(key)
    try:
        if not lock.acquire(timeout=timeout_seconds):
            raise ConflictError("Another message is still being processed for this account")
        try:
            yield
        finally:
            lock.release()
    finally:
        _release(key)


def lock_key_chat(identity_id: int) -> str:
    return f"lock:identity:{identity_id}:chat"
