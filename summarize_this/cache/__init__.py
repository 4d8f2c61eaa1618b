"""Request fingerprints, the result cache and single-flight deduplication."""

from summarize_this.cache.fingerprint import fingerprint, normalize_text
from summarize_this.cache.single_flight import Flight, SingleFlight
from summarize_this.cache.store import (
    CacheBackend,
    CacheEntry,
    MemoryCacheBackend,
    RedisCacheBackend,
    ResultCache,
)

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "Flight",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "ResultCache",
    "SingleFlight",
    "fingerprint",
    "normalize_text",
]
