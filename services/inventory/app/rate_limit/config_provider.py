"""Sources for per-endpoint rate limit overrides.

Overrides map an endpoint pattern to a request limit. Insertion order is
significant: the first matching pattern wins.
"""
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from app.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

Overrides = Dict[str, int]


def validate_overrides(raw) -> Overrides:
    if not isinstance(raw, Mapping):
        raise ValidationError("Invalid rate limits format: expected an object of pattern -> limit")
    overrides: Overrides = {}
    for pattern, limit in raw.items():
        if not isinstance(pattern, str) or not pattern:
            raise ValidationError("Rate limit patterns must be non-empty strings")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError(f"Rate limit for {pattern!r} must be a positive integer")
        overrides[pattern] = limit
    return overrides


class RateLimitConfigProvider(ABC):
    """Capability the admission controller reads its overrides from"""

    @abstractmethod
    def current(self) -> Overrides:
        """Last successfully loaded overrides"""

    @abstractmethod
    def reload(self) -> Overrides:
        """Re-read the source; on failure keep and return the last good overrides"""

    def update(self, overrides: Mapping[str, int]) -> Overrides:
        raise NotImplementedError(f"{type(self).__name__} does not support updates")


class StaticRateLimitConfig(RateLimitConfigProvider):
    """In-memory overrides, for tests and deployments without a config file"""

    def __init__(self, overrides: Optional[Mapping[str, int]] = None):
        self._overrides = validate_overrides(overrides or {})
        self._lock = threading.Lock()

    def current(self) -> Overrides:
        with self._lock:
            return dict(self._overrides)

    def reload(self) -> Overrides:
        return self.current()

    def update(self, overrides: Mapping[str, int]) -> Overrides:
        validated = validate_overrides(overrides)
        with self._lock:
            self._overrides = validated
        return dict(validated)


class JsonFileRateLimitConfig(RateLimitConfigProvider):
    """Overrides stored in a JSON file, e.g. ``{"/api/auth": 5}``.

    A missing file means no overrides. A file that cannot be read or parsed
    leaves the previous overrides in place.
    """

    def __init__(self, path: str):
        self.path = path
        self._overrides: Overrides = {}
        self._lock = threading.Lock()
        self.reload()

    def current(self) -> Overrides:
        with self._lock:
            return dict(self._overrides)

    def reload(self) -> Overrides:
        with self._lock:
            try:
                if not os.path.exists(self.path):
                    if self._overrides:
                        logger.info(f"Rate limit config {self.path} removed; clearing overrides")
                    self._overrides = {}
                    return dict(self._overrides)

                with open(self.path, "r", encoding="utf-8") as f:
                    overrides = validate_overrides(json.load(f))
                if overrides != self._overrides:
                    logger.info(f"Loaded rate limit configuration: {overrides}")
                self._overrides = overrides
            except (OSError, ValueError, ValidationError) as e:
                logger.warning(
                    f"Error loading rate limit configuration from {self.path}: {e}. "
                    f"Keeping last good configuration"
                )
            return dict(self._overrides)

    def update(self, overrides: Mapping[str, int]) -> Overrides:
        validated = validate_overrides(overrides)
        with self._lock:
            directory = os.path.dirname(os.path.abspath(self.path))
            tmp_path = None
            try:
                os.makedirs(directory, exist_ok=True)
                # Write then rename so a concurrent reload never sees a partial file
                fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(validated, f, indent=2)
                os.replace(tmp_path, self.path)
            except OSError as e:
                if tmp_path and os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                logger.error(f"Error writing rate limit configuration to {self.path}: {e}", exc_info=True)
                raise PersistenceError("Failed to update rate limits") from e
            self._overrides = validated
        logger.info(f"Updated rate limit configuration: {validated}")
        return dict(validated)
