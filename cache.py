#!/usr/bin/env python3
"""
Flat on-disk cache for raw API responses.

Each logical key maps to one file, ``<cache_dir>/<prefix><key><suffix>``, whose
contents are the raw response text. Entries older than the freshness window
are reported as stale but never deleted; the next ``put`` overwrites them.
"""

from asyncio import get_event_loop
from dataclasses import dataclass
from enum import Enum
from functools import partial
from time import time
from typing import Any, Optional
import os

from config import config, get_logger
from errors import CacheIOError
from utils import format_timestamp

logger = get_logger("cache")

SECONDS_PER_MINUTE = 60


class CacheStatus(Enum):
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache lookup.

    ``payload`` is only set for fresh entries; ``age`` is the number of seconds
    since the entry was last written (None when there is no entry). An entry
    whose bytes are not valid UTF-8 is reported as stale.
    """
    status: CacheStatus
    payload: Optional[str] = None
    age: Optional[float] = None

    @property
    def fresh(self) -> bool:
        return self.status is CacheStatus.FRESH


def cache_key(key: str) -> str:
    """Flatten a logical key so it names a single file in the cache directory."""
    return key.replace("/", "-")


class CacheStore:
    """Get/put of opaque text payloads with a fixed time-to-live."""

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        prefix: Optional[str] = None,
        suffix: Optional[str] = None,
    ) -> None:
        self.cache_dir = cache_dir or config.CACHE_DIR
        if ttl_seconds is None:
            ttl_seconds = config.CACHE_TTL_MINUTES * SECONDS_PER_MINUTE
        self.ttl_seconds = ttl_seconds
        self.prefix = config.CACHE_PREFIX if prefix is None else prefix
        self.suffix = config.CACHE_SUFFIX if suffix is None else suffix

    def path_for(self, key: str) -> str:
        """Return the file path backing ``key``."""
        return os.path.join(self.cache_dir, f"{self.prefix}{cache_key(key)}{self.suffix}")

    async def run_in_executor(self, func, *args) -> Any:
        """Run blocking file I/O in the default thread pool executor."""
        loop = get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def lookup(self, key: str) -> CacheLookup:
        """Classify the entry for ``key`` as fresh, stale or absent."""
        return await self.run_in_executor(self._lookup_sync, key)

    async def get(self, key: str) -> Optional[str]:
        """Return the cached payload for ``key`` if it is still fresh."""
        result = await self.lookup(key)
        return result.payload if result.fresh else None

    async def put(self, key: str, payload: str) -> None:
        """Store ``payload`` under ``key``, replacing any existing entry."""
        await self.run_in_executor(self._put_sync, key, payload)

    def _lookup_sync(self, key: str) -> CacheLookup:
        cache_file = self.path_for(key)
        try:
            stats = os.stat(cache_file)
        except FileNotFoundError:
            logger.debug(f"Cache miss for {key} (no entry)")
            return CacheLookup(CacheStatus.ABSENT)
        except OSError as e:
            logger.error(f"Error checking the cache file at {cache_file}: {e}")
            raise CacheIOError(cache_file, "Unable to stat cache entry") from e

        age = time() - stats.st_mtime
        if age >= self.ttl_seconds:
            logger.debug(
                f"Cache entry for {key} is stale (written {format_timestamp(stats.st_mtime)}, age {age:.0f}s)"
            )
            return CacheLookup(CacheStatus.STALE, age=age)

        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                payload = f.read()
        except UnicodeDecodeError as e:
            # Reported as stale so the caller refetches and overwrites it
            logger.warning(f"Cache entry for {key} is not valid UTF-8, treating it as stale: {e}")
            return CacheLookup(CacheStatus.STALE, age=age)
        except OSError as e:
            logger.error(f"Error reading the cache file at {cache_file}: {e}")
            raise CacheIOError(cache_file, "Unable to read cache entry") from e

        logger.debug(f"Cache hit for {key} (age {age:.0f}s)")
        return CacheLookup(CacheStatus.FRESH, payload=payload, age=age)

    def _put_sync(self, key: str, payload: str) -> None:
        cache_file = self.path_for(key)
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with open(cache_file, "w", encoding="utf-8") as f:
                f.write(payload)
        except OSError as e:
            logger.error(f"Error adding response to cache at {cache_file}: {e}")
            raise CacheIOError(cache_file, "Unable to write cache entry") from e
        logger.debug(f"Cached {len(payload)} characters for {key}")
