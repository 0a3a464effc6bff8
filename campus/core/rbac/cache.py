"""Decision cache: per-principal store of resolved permission sets.

The resolver reads through the cache and the administration layer
invalidates it whenever a principal's effective permissions change.
Three backends are provided:

  - StoreDecisionCache: the policy store's cache table (default)
  - InMemoryDecisionCache: process-local, lock-striped
  - RedisDecisionCache: shared across processes via SETEX
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .permissions import EffectivePermission
from .store import PolicyStore

if TYPE_CHECKING:
    from redis import Redis
    from campus.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600  # 1 hour


class DecisionCache(ABC):
    """Keyed, TTL-bounded cache of effective permission sets."""

    @abstractmethod
    def get(self, principal_id: int) -> Optional[List[EffectivePermission]]:
        """Return the cached set, or None on miss or expiry."""

    @abstractmethod
    def put(
        self,
        principal_id: int,
        permissions: List[EffectivePermission],
        loaded_at: Optional[datetime] = None,
    ) -> None:
        """
        Store a permission set.

        `loaded_at` is when the set was read from the policy store. Backends
        that can detect it drop a put whose data predates the latest
        invalidation.
        """

    @abstractmethod
    def invalidate(self, principal_id: int) -> None:
        ...


def _dump(permissions: List[EffectivePermission]) -> List[dict]:
    return [p.to_dict() for p in permissions]


def _load(raw: List[dict]) -> List[EffectivePermission]:
    return [EffectivePermission.from_dict(item) for item in raw]


class StoreDecisionCache(DecisionCache):
    """Cache kept in the policy store (the user_permission_cache table)."""

    def __init__(self, store: PolicyStore, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)

    def get(self, principal_id: int) -> Optional[List[EffectivePermission]]:
        entry = self.store.get_cache_entry(principal_id)
        if entry is None or entry.is_expired():
            return None
        return _load(entry.permissions or [])

    def put(
        self,
        principal_id: int,
        permissions: List[EffectivePermission],
        loaded_at: Optional[datetime] = None,
    ) -> None:
        now = datetime.utcnow()
        self.store.upsert_cache_entry(
            principal_id,
            _dump(permissions),
            last_updated=now,
            expires_at=now + self.ttl,
        )

    def invalidate(self, principal_id: int) -> None:
        self.store.delete_cache_entry(principal_id)


class _Stripe:
    __slots__ = ("lock", "entries", "invalidated_at")

    def __init__(self):
        self.lock = threading.Lock()
        self.entries: Dict[int, Tuple[float, List[EffectivePermission]]] = {}
        self.invalidated_at: Dict[int, datetime] = {}


class InMemoryDecisionCache(DecisionCache):
    """
    Process-local cache.

    State is striped by principal id so principals never contend on a
    global lock. Invalidation timestamps are kept so that a put carrying
    data loaded before the latest invalidate is discarded. Timestamps and
    entries older than the TTL are pruned from a stripe whenever it is
    written.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        stripes: int = 64,
        clock=time.monotonic,
        wall_clock=datetime.utcnow,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._wall_clock = wall_clock
        self._stripes = [_Stripe() for _ in range(stripes)]

    def _stripe_for(self, principal_id: int) -> _Stripe:
        return self._stripes[hash(principal_id) % len(self._stripes)]

    def _prune(self, stripe: _Stripe) -> None:
        # Caller holds stripe.lock
        now = self._clock()
        for pid in [p for p, (expires_at, _) in stripe.entries.items() if expires_at <= now]:
            del stripe.entries[pid]

        horizon = self._wall_clock() - timedelta(seconds=self.ttl_seconds)
        for pid in [p for p, stamp in stripe.invalidated_at.items() if stamp < horizon]:
            del stripe.invalidated_at[pid]

    def get(self, principal_id: int) -> Optional[List[EffectivePermission]]:
        stripe = self._stripe_for(principal_id)
        with stripe.lock:
            item = stripe.entries.get(principal_id)
            if item is None:
                return None
            expires_at, permissions = item
            if expires_at <= self._clock():
                del stripe.entries[principal_id]
                return None
            return list(permissions)

    def put(
        self,
        principal_id: int,
        permissions: List[EffectivePermission],
        loaded_at: Optional[datetime] = None,
    ) -> None:
        stripe = self._stripe_for(principal_id)
        with stripe.lock:
            self._prune(stripe)
            invalidated_at = stripe.invalidated_at.get(principal_id)
            if loaded_at is not None and invalidated_at is not None and loaded_at < invalidated_at:
                logger.debug(f"Discarding stale permission set for user {principal_id}")
                return
            stripe.entries[principal_id] = (self._clock() + self.ttl_seconds, list(permissions))

    def invalidate(self, principal_id: int) -> None:
        stripe = self._stripe_for(principal_id)
        with stripe.lock:
            self._prune(stripe)
            stripe.entries.pop(principal_id, None)
            stripe.invalidated_at[principal_id] = self._wall_clock()

    def clear(self) -> None:
        for stripe in self._stripes:
            with stripe.lock:
                stripe.entries.clear()
                stripe.invalidated_at.clear()


class RedisDecisionCache(DecisionCache):
    """Cache shared through Redis; values are JSON, expiry via SETEX."""

    def __init__(
        self,
        client: "Redis",
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        prefix: str = "rbac:perms",
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, principal_id: int) -> str:
        return f"{self.prefix}:{principal_id}"

    def get(self, principal_id: int) -> Optional[List[EffectivePermission]]:
        raw = self.client.get(self._key(principal_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return _load(json.loads(raw))

    def put(
        self,
        principal_id: int,
        permissions: List[EffectivePermission],
        loaded_at: Optional[datetime] = None,
    ) -> None:
        self.client.setex(
            self._key(principal_id), self.ttl_seconds, json.dumps(_dump(permissions))
        )

    def invalidate(self, principal_id: int) -> None:
        self.client.delete(self._key(principal_id))


_memory_cache: Optional[InMemoryDecisionCache] = None
_memory_cache_lock = threading.Lock()

_redis_client: Optional["Redis"] = None
_redis_client_lock = threading.Lock()


def get_redis_client(url: str) -> "Redis":
    """Process-wide Redis client; its connection pool is shared by every request."""
    global _redis_client

    with _redis_client_lock:
        if _redis_client is None:
            import redis

            _redis_client = redis.Redis.from_url(url)
            logger.info("Connected decision cache to Redis")
        return _redis_client


def close_redis_client() -> None:
    """Close the shared Redis client, if one was opened."""
    global _redis_client

    with _redis_client_lock:
        if _redis_client is not None:
            _redis_client.close()
            _redis_client = None


def build_decision_cache(settings: "Settings", store: PolicyStore) -> DecisionCache:
    """Select the cache backend configured by `permission_cache_backend`."""
    global _memory_cache

    backend = settings.permission_cache_backend
    ttl = settings.permission_cache_ttl_seconds

    if backend == "memory":
        # Shared per process so invalidations reach every request
        with _memory_cache_lock:
            if _memory_cache is None:
                _memory_cache = InMemoryDecisionCache(ttl_seconds=ttl)
            return _memory_cache

    if backend == "redis":
        return RedisDecisionCache(
            get_redis_client(settings.redis_url),
            ttl_seconds=ttl,
            prefix=settings.permission_cache_prefix,
        )

    return StoreDecisionCache(store, ttl_seconds=ttl)
