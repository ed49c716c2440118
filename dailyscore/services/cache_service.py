"""
Cache Service: read-through cache for derived views (the leaderboard).

Every key is stored under the ``dailyscore:`` namespace so that clearing
the cache never touches other data living in the same Redis database.
Redis is used when REDIS_URL points at a server; otherwise a process-local
store keeps the same interface. Cached values are JSON documents.

Correctness never depends on the cache: ledger writes invalidate by prefix
and a miss simply rebuilds the view from the database.
"""

import json
import logging
import time

from flask import current_app

logger = logging.getLogger(__name__)

NAMESPACE = "dailyscore:"


class _LocalStore:
    """Process-local stand-in for the handful of Redis commands used here."""

    def __init__(self):
        self._data = {}  # key -> (payload, expires_at)

    def get(self, key):
        payload, expires_at = self._data.get(key, (None, 0))
        if payload is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return payload

    def setex(self, key, ttl_seconds, payload):
        self._data[key] = (payload, time.monotonic() + ttl_seconds)

    def delete(self, *keys):
        for key in keys:
            self._data.pop(key, None)

    def scan_iter(self, match):
        prefix = match.rstrip("*")
        return [k for k in list(self._data) if k.startswith(prefix)]

    def ping(self):
        return True


_store = None
_stats = {"hits": 0, "misses": 0}


def _backend():
    global _store
    if _store is None:
        url = current_app.config.get("REDIS_URL") or "memory://"
        if url.startswith("memory://"):
            _store = _LocalStore()
        else:
            import redis

            client = redis.from_url(url, decode_responses=True)
            try:
                client.ping()
                _store = client
                logger.info("Leaderboard cache on Redis at %s", url.split("@")[-1])
            except redis.RedisError as exc:
                logger.warning("Redis unreachable (%s), caching in process memory", exc)
                _store = _LocalStore()
    return _store


def get_cached(key, ttl, loader):
    """Return the cached JSON value for *key*, calling *loader* on a miss.

    The loaded value is stored for *ttl* seconds. A cache outage degrades to
    calling *loader* directly.
    """
    full_key = NAMESPACE + key
    try:
        raw = _backend().get(full_key)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cache read failed for %s: %s", full_key, exc)
        return loader()
    if raw is not None:
        _stats["hits"] += 1
        return json.loads(raw)

    _stats["misses"] += 1
    value = loader()
    try:
        _backend().setex(full_key, ttl, json.dumps(value))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cache write failed for %s: %s", full_key, exc)
    return value


def delete_prefix(prefix):
    """Drop every cached key starting with *prefix*. Returns how many.

    A cache outage is logged and reported as 0; callers have already
    committed their writes by the time they invalidate.
    """
    try:
        store = _backend()
        keys = list(store.scan_iter(match=f"{NAMESPACE}{prefix}*"))
        if keys:
            store.delete(*keys)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cache invalidation failed for %s*: %s", prefix, exc)
        return 0
    return len(keys)


def clear_all():
    """Drop everything under the namespace and reset hit counters."""
    delete_prefix("")
    _stats.update(hits=0, misses=0)


def health_check():
    store = _backend()
    try:
        store.ping()
    except Exception as exc:  # noqa: BLE001
        return {"status": "error", "detail": str(exc)}
    return {
        "status": "ok",
        "backend": "memory" if isinstance(store, _LocalStore) else "redis",
        **_stats,
    }
