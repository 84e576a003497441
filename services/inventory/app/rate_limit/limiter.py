"""Fixed-window request admission keyed by (client, endpoint).

Buckets live in process memory only. They are spread over lock shards so an
increment-and-compare on one key is atomic while unrelated keys, and the
background sweep, never wait on a single global lock.
"""
import logging
import math
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from app.errors import RateLimitExceededError
from app.rate_limit.config_provider import RateLimitConfigProvider, StaticRateLimitConfig

logger = logging.getLogger(__name__)

BucketKey = Tuple[str, str]


@dataclass
class Bucket:
    count: int
    window_start: float


@dataclass
class AdmissionDecision:
    allowed: bool
    limit: int
    count: int
    retry_after_seconds: int = 0


class _Shard:
    __slots__ = ("lock", "buckets")

    def __init__(self):
        self.lock = threading.Lock()
        self.buckets: Dict[BucketKey, Bucket] = {}


_UNCOMPILED = object()


def _compile(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


class AdmissionController:
    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 100,
        config: Optional[RateLimitConfigProvider] = None,
        clock: Callable[[], float] = time.monotonic,
        shards: int = 16,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.config = config or StaticRateLimitConfig()
        self.clock = clock
        self._shards: List[_Shard] = [_Shard() for _ in range(shards)]
        self._patterns: Dict[str, Optional[re.Pattern]] = {}

    def _shard(self, key: BucketKey) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def _expired(self, bucket: Bucket, now: float) -> bool:
        return now - bucket.window_start > self.window_seconds

    def limit_for(self, endpoint: str) -> int:
        """Effective limit: first override whose pattern matches, else the default"""
        lowered = endpoint.lower()
        # reload_config swaps in a fresh cache; keep reading the one we started with
        patterns = self._patterns
        for pattern, limit in self.config.current().items():
            if pattern.lower() in lowered:
                return limit
            regex = patterns.get(pattern, _UNCOMPILED)
            if regex is _UNCOMPILED:
                regex = _compile(pattern)
                patterns[pattern] = regex
            if regex is not None and regex.search(endpoint):
                return limit
        return self.max_requests

    def admit(self, client_id: str, endpoint: str) -> AdmissionDecision:
        key = (client_id, endpoint)
        limit = self.limit_for(endpoint)
        shard = self._shard(key)
        with shard.lock:
            now = self.clock()
            bucket = shard.buckets.get(key)
            if bucket is None or self._expired(bucket, now):
                shard.buckets[key] = Bucket(count=1, window_start=now)
                return AdmissionDecision(allowed=True, limit=limit, count=1)

            # Rejected requests still count toward the window
            bucket.count += 1
            if bucket.count <= limit:
                return AdmissionDecision(allowed=True, limit=limit, count=bucket.count)

            remaining = bucket.window_start + self.window_seconds - now
            retry_after = max(1, math.ceil(remaining))
            return AdmissionDecision(
                allowed=False,
                limit=limit,
                count=bucket.count,
                retry_after_seconds=retry_after,
            )

    def enforce(self, client_id: str, endpoint: str) -> AdmissionDecision:
        decision = self.admit(client_id, endpoint)
        if not decision.allowed:
            raise RateLimitExceededError(decision.retry_after_seconds)
        return decision

    def sweep(self) -> int:
        """Drop expired buckets; returns how many were removed"""
        removed = 0
        for shard in self._shards:
            with shard.lock:
                now = self.clock()
                expired = [key for key, bucket in shard.buckets.items() if self._expired(bucket, now)]
                for key in expired:
                    del shard.buckets[key]
                removed += len(expired)
        if removed:
            logger.debug(f"Rate limit sweep removed {removed} expired buckets")
        return removed

    def reload_config(self):
        overrides = self.config.reload()
        self._patterns = {}
        return overrides

    def bucket_count(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.buckets)
        return total

    def reset(self):
        for shard in self._shards:
            with shard.lock:
                shard.buckets.clear()


class RateLimitSweeper:
    """Background thread that sweeps expired buckets and reloads overrides"""

    def __init__(self, controller: AdmissionController, interval_seconds: float = 60.0):
        self.controller = controller
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread and self._thread.is_alive():
            logger.warning("Rate limit sweeper is already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="rate-limit-sweeper")
        self._thread.start()
        logger.info(f"Started rate limit sweeper (interval {self.interval_seconds}s)")

    def _run(self):
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def run_once(self):
        try:
            self.controller.sweep()
            self.controller.reload_config()
        except Exception as e:
            logger.error(f"Rate limit sweep failed: {e}", exc_info=True)

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Stopped rate limit sweeper")
