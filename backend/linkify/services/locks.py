"""
Per-key in-flight locks around the enrichment read-check-then-write pattern.

Two requests for the same not-yet-analysed key would otherwise both see an
empty blob and both pay for a completion call. Callers take the lock for the
key, re-check the store, and only then call the model.

`LocalKeyedLock` serialises within one process. `RedisKeyedLock` does the
same across processes when REDIS_URL is configured.
"""
from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
import logging
from threading import Lock
from typing import Dict, Iterator, Protocol

import redis

from ..core.config import get_settings

logger = logging.getLogger(__name__)

# Long enough for two back-to-back completion calls
LOCK_TIMEOUT_SECONDS = 300


class KeyedLock(Protocol):
    def hold(self, key: str) -> Iterator[None]: ...


class LocalKeyedLock:
    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[str, Lock] = {}
        self._waiters: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
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


class RedisKeyedLock:
    def __init__(self, client: redis.Redis, prefix: str = "linkify:inflight:"):
        self._client = client
        self._prefix = prefix

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._client.lock(
            self._prefix + key,
            timeout=LOCK_TIMEOUT_SECONDS,
            blocking_timeout=LOCK_TIMEOUT_SECONDS,
        )
        if not lock.acquire():
            # Holder is still running; proceed and let the store's unique
            # constraints settle the write.
            logger.warning("Timed out waiting for in-flight lock", extra={"step": key})
            yield
            return
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError:
                logger.warning("In-flight lock expired before release", extra={"step": key})


@lru_cache(maxsize=1)
def get_inflight_locks() -> KeyedLock:
    settings = get_settings()
    if settings.REDIS_URL:
        client = redis.from_url(
            settings.REDIS_URL,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        return RedisKeyedLock(client)
    return LocalKeyedLock()
