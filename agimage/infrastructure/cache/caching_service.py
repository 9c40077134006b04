"""Concrete implementation of the two-level Caching Service.

L1 is an in-process dictionary with per-entry expiry; L2 is a `diskcache`
directory that survives between CLI invocations. Used to remember resolved
project ids so most calls skip the loadCodeAssist round trip.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import diskcache as dc

from agimage.domain.interfaces.cache import CACHE_LEVELS, CacheService
from agimage.domain.models.common import CacheKey

logger = logging.getLogger(__name__)

DEFAULT_L1_MAX_ITEMS = 128
DEFAULT_L1_TTL_SECONDS = 15 * 60          # 15 minutes
DEFAULT_L2_TTL_SECONDS = 24 * 60 * 60     # 24 hours
DEFAULT_L2_CACHE_DIR = Path.home() / ".agimage" / "cache"


@dataclass
class CacheEntry:
    """Internal representation of an L1 entry with expiry."""
    value: Any
    expiry_time: float # Unix timestamp when the entry expires


class CachingServiceImpl(CacheService):
    """Multi-level cache implementation (L1 memory, L2 diskcache)."""

    def __init__(
        self,
        l2_dir: Path = DEFAULT_L2_CACHE_DIR,
        l1_max_items: int = DEFAULT_L1_MAX_ITEMS,
        l1_ttl: int = DEFAULT_L1_TTL_SECONDS,
        l2_ttl: int = DEFAULT_L2_TTL_SECONDS,
    ):
        self.l1_cache: Dict[CacheKey, CacheEntry] = {}
        self.l1_max_items = l1_max_items
        self.l1_ttl = l1_ttl
        self.l2_ttl = l2_ttl

        # L2 is optional: a broken cache directory must not stop generation
        self.disk_cache: Optional[dc.Cache] = None
        try:
            self.disk_cache = dc.Cache(str(l2_dir), timeout=1)
            logger.info(f"Initialized L2 disk cache at {self.disk_cache.directory} (ttl={l2_ttl}s)")
        except OSError as e:
            logger.error(f"Failed to initialize L2 disk cache at {l2_dir}: {e}", exc_info=True)

    def _check_level(self, level: str) -> None:
        if level not in CACHE_LEVELS:
            raise ValueError(f"Unknown cache level '{level}'. Use one of: {', '.join(CACHE_LEVELS)}")

    def _prune_l1(self) -> None:
        now = time.time()
        for key in [k for k, v in self.l1_cache.items() if now > v.expiry_time]:
            del self.l1_cache[key]
        while len(self.l1_cache) > self.l1_max_items:
            # Oldest by insertion order
            del self.l1_cache[next(iter(self.l1_cache))]

    async def get(self, key: CacheKey, level: str = 'all') -> Optional[Any]:
        self._check_level(level)

        if level in ('l1', 'all'):
            self._prune_l1()
            entry = self.l1_cache.get(key)
            if entry is not None:
                logger.debug(f"L1 cache hit for key: {key}")
                return entry.value

        if level in ('l2', 'all') and self.disk_cache is not None:
            value = await asyncio.to_thread(self.disk_cache.get, key)
            if value is not None:
                logger.debug(f"L2 cache hit for key: {key}")
                if level == 'all':
                    await self.set(key, value, ttl=self.l1_ttl, level='l1')
                return value

        logger.debug(f"Cache miss for key: {key}")
        return None

    async def set(self, key: CacheKey, value: Any, ttl: Optional[int] = None, level: str = 'all') -> None:
        self._check_level(level)

        if level in ('l1', 'all'):
            l1_ttl = min(ttl, self.l1_ttl) if ttl is not None else self.l1_ttl
            self.l1_cache[key] = CacheEntry(value=value, expiry_time=time.time() + l1_ttl)
            self._prune_l1()

        if level in ('l2', 'all') and self.disk_cache is not None:
            await asyncio.to_thread(self.disk_cache.set, key, value, expire=ttl or self.l2_ttl)
        logger.debug(f"Cached key {key} at level {level}")

    async def delete(self, key: CacheKey, level: str = 'all') -> None:
        self._check_level(level)
        if level in ('l1', 'all'):
            self.l1_cache.pop(key, None)
        if level in ('l2', 'all') and self.disk_cache is not None:
            await asyncio.to_thread(self.disk_cache.delete, key)

    async def clear(self, level: str = 'all') -> None:
        self._check_level(level)
        if level in ('l1', 'all'):
            self.l1_cache.clear()
            logger.info("L1 cache cleared.")
        if level in ('l2', 'all') and self.disk_cache is not None:
            removed = await asyncio.to_thread(self.disk_cache.clear)
            logger.info(f"L2 cache cleared ({removed} entries).")

    def close(self) -> None:
        if self.disk_cache is not None:
            self.disk_cache.close()
