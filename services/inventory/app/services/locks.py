import threading
import weakref
from contextlib import contextmanager
from typing import Tuple

from app.errors import PersistenceError

AggregateKey = Tuple[int, int]


class StockLockRegistry:
    """Per-(store, product) locks around the read-append-commit of a mutation.

    Pairs never share a lock, so mutations on different aggregates proceed in
    parallel. The database advisory lock taken by the ledger extends this to
    other processes when running on PostgreSQL.

    Entries are weak: a pair's lock lives only while some caller holds or
    waits on it, so the registry stays as small as the set of busy pairs.
    """

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds
        self._locks: "weakref.WeakValueDictionary[AggregateKey, threading.Lock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def _get_lock(self, key: AggregateKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, store_id: int, product_id: int):
        # The local reference keeps the entry alive until release
        lock = self._get_lock((store_id, product_id))
        if not lock.acquire(timeout=self.timeout_seconds):
            raise PersistenceError(
                f"Timed out waiting for stock lock on store {store_id}, product {product_id}"
            )
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
