"""
Result cache with pluggable backends.

The cache is never a source of truth: backend failures are logged and
treated as a miss (lookups) or a skipped write (stores).
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import orjson
import redis.asyncio as redis

from summarize_this.summarizer.models import SummarizationResult

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(slots=True)
class CacheEntry:
    fingerprint: str
    result: SummarizationResult
    stored_at: float
    ttl_seconds: int

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl_seconds

    def to_json(self) -> bytes:
        return orjson.dumps(
            {
                "fingerprint": self.fingerprint,
                "result": self.result.to_dict(),
                "stored_at": self.stored_at,
                "ttl_seconds": self.ttl_seconds,
            }
        )

    @classmethod
    def from_json(cls, raw: bytes | str) -> "CacheEntry":
        data: Dict[str, Any] = orjson.loads(raw)
        return cls(
            fingerprint=data["fingerprint"],
            result=SummarizationResult.from_dict(data["result"]),
            stored_at=data["stored_at"],
            ttl_seconds=data["ttl_seconds"],
        )


class CacheBackend(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry or None."""

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        """Upsert ``entry`` under ``key``; last write wins."""

    async def close(self) -> None:
        return None


class MemoryCacheBackend(CacheBackend):
    """In-process TTL map."""

    def __init__(self, clock: Clock = time.time):
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend(CacheBackend):
    """Async Redis backend; expiry is delegated to ``SETEX``."""

    def __init__(self, url: str = "redis://localhost:6379/0"):
        self._url = url
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create async Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self._url)
            logger.info(f"[CACHE] Redis initialized | url={self._url}")
        return self._redis

    async def get(self, key: str) -> Optional[CacheEntry]:
        client = await self._get_redis()
        raw = await client.get(key)
        if raw is None:
            return None
        return CacheEntry.from_json(raw)

    async def set(self, key: str, entry: CacheEntry) -> None:
        client = await self._get_redis()
        await client.setex(key, entry.ttl_seconds, entry.to_json())

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None


class ResultCache:
    """Fingerprint-keyed cache of summarization results."""

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        ttl_seconds: int = 3600,
        prefix: str = "summary",
        clock: Clock = time.time,
    ):
        self.backend = backend if backend is not None else MemoryCacheBackend(clock)
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def _key(self, fingerprint: str) -> str:
        return f"{self.prefix}:{fingerprint}"

    async def lookup(self, fingerprint: str) -> Optional[CacheEntry]:
        try:
            entry = await self.backend.get(self._key(fingerprint))
        except Exception as exc:
            logger.error(
                f"[CACHE] Lookup failed | key={fingerprint[:12]} | "
                f"error={exc.__class__.__name__}: {exc}"
            )
            entry = None

        if entry is not None and entry.is_expired(self._clock()):
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry

    async def store(
        self,
        fingerprint: str,
        result: SummarizationResult,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        entry = CacheEntry(
            fingerprint=fingerprint,
            result=result,
            stored_at=self._clock(),
            ttl_seconds=ttl_seconds or self.ttl_seconds,
        )
        try:
            await self.backend.set(self._key(fingerprint), entry)
        except Exception as exc:
            logger.error(
                f"[CACHE] Store failed | key={fingerprint[:12]} | "
                f"error={exc.__class__.__name__}: {exc}"
            )
            return
        logger.debug(f"[CACHE] Stored | key={fingerprint[:12]} | ttl={entry.ttl_seconds}s")

    def stats(self) -> Tuple[int, int]:
        return self.hits, self.misses

    async def close(self) -> None:
        await self.backend.close()
