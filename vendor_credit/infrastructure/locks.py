"""In-process keyed mutexes for per-cycle and per-vendor mutual exclusion"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple
from sqlalchemy.orm.exc import StaleDataError

from vendor_credit.config import settings
from vendor_credit.domain.exceptions import ConcurrencyConflictError
from vendor_credit.infrastructure.observability.metrics import concurrency_conflict_counter


class KeyedLockRegistry:
    """
    One lock per key, created on demand and dropped when nobody holds or waits on it.

    Different keys never block each other. Cross-process writers are covered by
    row locks and version columns in the database layer.
    """

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, entity_type: str, entity_id, timeout: float | None = None) -> Iterator[None]:
        key = f"{entity_type}:{entity_id}"
        with self._guard:
            lock, waiters = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, waiters + 1)

        acquired = lock.acquire(timeout=self.timeout_seconds if timeout is None else timeout)
        try:
            if not acquired:
                concurrency_conflict_counter.labels(entity_type=entity_type).inc()
                raise ConcurrencyConflictError(entity_type, entity_id, "lock wait timed out")
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                lock, waiters = self._locks[key]
                if waiters <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, waiters - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every service in the process
lock_registry = KeyedLockRegistry(timeout_seconds=settings.lock_timeout_seconds)


@contextmanager
def version_conflict_guard(entity_type: str, entity_id) -> Iterator[None]:
    """Translate an optimistic version failure at flush/commit into the domain conflict error"""
    try:
        yield
    except StaleDataError as e:
        concurrency_conflict_counter.labels(entity_type=entity_type).inc()
        raise ConcurrencyConflictError(entity_type, entity_id, "version changed since read") from e
