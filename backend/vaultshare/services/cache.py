"""
Short-lived cache for rendered previews.

Entries are immutable once written and simply age out, so concurrent
readers and writers need no invalidation protocol. A cache error is a miss.
"""
import base64
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviewEntry:
    content: bytes
    mime_type: str
    is_image: bool


class PreviewCache:
    def get(self, key: str) -> Optional[PreviewEntry]:
        raise NotImplementedError

    def set(self, key: str, entry: PreviewEntry, ttl: int) -> None:
        raise NotImplementedError


class NullPreviewCache(PreviewCache):
    """Never stores anything; every lookup re-renders."""

    def get(self, key: str) -> Optional[PreviewEntry]:
        return None

    def set(self, key: str, entry: PreviewEntry, ttl: int) -> None:
        return None


class MemoryPreviewCache(PreviewCache):
    """In-process cache, per worker. Use Redis when running several workers."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._store: Dict[str, Tuple[float, PreviewEntry]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[PreviewEntry]:
        now = self._clock()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            expires_at, entry = item
            if now >= expires_at:
                del self._store[key]
                return None
            return entry

    def set(self, key: str, entry: PreviewEntry, ttl: int) -> None:
        now = self._clock()
        with self._lock:
            # drop whatever aged out while we are holding the lock anyway
            for stale in [k for k, (exp, _) in self._store.items() if now >= exp]:
                del self._store[stale]
            self._store[key] = (now + ttl, entry)


class RedisPreviewCache(PreviewCache):
    """
    Redis-backed preview cache.

    Payloads are JSON with the rendered bytes base64-encoded and are written
    with SETEX so Redis expires them on its own.
    """

    def __init__(self, redis_client, prefix: str = "preview"):
        self.redis = redis_client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisPreviewCache":
        return cls(redis.Redis.from_url(url))

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[PreviewEntry]:
        cache_key = self._make_key(key)
        try:
            raw = self.redis.get(cache_key)
        except Exception as e:
            logger.error("Error reading preview cache %s: %s", cache_key, e)
            return None
        if raw is None:
            logger.debug("Cache miss for preview: %s", cache_key)
            return None
        try:
            data = json.loads(raw)
            return PreviewEntry(
                content=base64.b64decode(data["content"]),
                mime_type=data["mime_type"],
                is_image=bool(data["is_image"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding malformed preview cache entry %s: %s", cache_key, e)
            return None

    def set(self, key: str, entry: PreviewEntry, ttl: int) -> None:
        cache_key = self._make_key(key)
        payload = json.dumps(
            {
                "content": base64.b64encode(entry.content).decode("ascii"),
                "mime_type": entry.mime_type,
                "is_image": entry.is_image,
            }
        )
        try:
            self.redis.setex(cache_key, ttl, payload)
            logger.debug("Cached preview: %s (TTL: %ss)", cache_key, ttl)
        except Exception as e:
            logger.error("Error caching preview %s: %s", cache_key, e)
