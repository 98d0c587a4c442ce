from __future__ import annotations

import json
import logging
import os
import time
from typing import Callable, Dict, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1


class QueryCache:
    """Read-through cache keyed by query identity; Redis-backed with in-memory fallback.

    Entries are replaced wholesale (last write wins). Callers get a fresh
    copy of the payload and never mutate the stored value.
    """

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: int = 300) -> None:
        self._ttl_seconds = ttl_seconds
        self._redis = None
        self._mem: Dict[str, Tuple[int, str]] = {}  # key -> (expires_at, raw)
        redis_url = redis_url if redis_url is not None else os.getenv("REDIS_URL")

        if redis_url:
            try:
                self._redis = redis.from_url(redis_url, decode_responses=True)
                self._redis.ping()
            except (redis.RedisError, ValueError) as exc:
                logger.warning(
                    "Redis unavailable for query cache, using in-memory cache",
                    extra={"error": str(exc)},
                )
                self._redis = None

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @staticmethod
    def _key(namespace: str, identity: str) -> str:
        normalized_namespace = str(namespace).strip()
        normalized_identity = str(identity).strip()
        if not normalized_namespace:
            raise ValueError("namespace is required")
        if not normalized_identity:
            raise ValueError("identity is required")
        return f"access:v{CACHE_SCHEMA_VERSION}:{normalized_namespace}:{normalized_identity}"

    def get(self, namespace: str, identity: str) -> Optional[dict]:
        key = self._key(namespace, identity)

        if self._redis is not None:
            raw = self._redis.get(key)
            if not raw:
                return None
            return _decode(raw)

        entry = self._mem.get(key)
        if not entry:
            return None
        expires_at, raw = entry
        if int(time.time()) >= expires_at:
            self._mem.pop(key, None)
            return None
        return _decode(raw)

    def set(self, namespace: str, identity: str, payload: dict, *, ttl_seconds: Optional[int] = None) -> None:
        key = self._key(namespace, identity)
        ttl = ttl_seconds or self._ttl_seconds
        raw = json.dumps({"schema_version": CACHE_SCHEMA_VERSION, "payload": payload})

        if self._redis is not None:
            self._redis.setex(key, ttl, raw)
            return

        now = int(time.time())
        self._prune_expired(now)
        self._mem[key] = (now + ttl, raw)

    def _prune_expired(self, now: int) -> None:
        expired = [key for key, (expires_at, _) in self._mem.items() if now >= expires_at]
        for key in expired:
            del self._mem[key]

    def invalidate(self, namespace: str, identity: str) -> None:
        key = self._key(namespace, identity)
        if self._redis is not None:
            self._redis.delete(key)
        self._mem.pop(key, None)

    def get_or_fetch(self, namespace: str, identity: str, fetcher: Callable[[], dict]) -> dict:
        """Return the cached payload, or fetch, store and return a fresh one."""
        cached = self.get(namespace, identity)
        if cached is not None:
            return cached
        payload = fetcher()
        self.set(namespace, identity, payload)
        return payload


def _decode(raw: str) -> dict:
    data = json.loads(raw)
    if int(data.get("schema_version", CACHE_SCHEMA_VERSION)) != CACHE_SCHEMA_VERSION:
        raise ValueError("Unsupported query cache schema version")
    return data["payload"]
