"""
ShopTrust — Two-Tier Cache Layer

Signal cache:    one entry per (signal type, domain). Each signal check
                 consults its own slot before calling out to a provider.
Aggregate cache: one entry per domain holding the final verdict. Consulted
                 before any signal check runs; a hit skips them all.

Cache Strategy (slower-changing signals live longer):
    domain-age       30 days
    certificate       7 days
    heuristics       30 days   (purely lexical, effectively static)
    malware-filter   24 hours
    reputation       24 hours
    reviews           6 hours
    aggregate        24 hours
    any "danger"     capped at CACHE_TTL_DANGER_MAX (re-evaluate sooner)
    failed storefront scan  capped at the reviews TTL
    partial verdict  (any signal unavailable) min of danger cap and signal TTLs

Key Schema:
    shoptrust:signal:{signal_type}:{domain}
    shoptrust:aggregate:{domain}

Caching is an optimization, never a correctness dependency: a backend that
is down or misbehaving turns every get into a miss and every set into a
no-op. Errors are logged, never raised.

Dependencies: redis >= 5.0.0 (RedisBackend only)
"""
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis
import structlog

from shoptrust.compute.targets import extract_domain
from shoptrust.config import Settings, get_settings
from shoptrust.errors import CacheBackendError
from shoptrust.trust.models import (
    AggregateResult, HeuristicsDetails, SignalResult, SignalStatus, SignalType,
)

logger = structlog.get_logger()

KEY_PREFIX = "shoptrust"


def normalize_domain(domain: str) -> str:
    """Stable key part: lower-cased, leading www. stripped."""
    return extract_domain(domain)


# ── Backends ──────────────────────────────────────

@dataclass
class CacheEntry:
    key: str
    value: str
    stored_at: float
    ttl_seconds: int

    def expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl_seconds


class CacheBackend:
    """get/set contract every storage medium satisfies."""

    name = "abstract"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullBackend(CacheBackend):
    """Caching disabled: everything is a miss."""

    name = "none"

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        return False


class MemoryBackend(CacheBackend):
    """
    In-process TTL map. Expiry is lazy: an entry past its TTL is removed on
    the read that discovers it. Last write wins.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return False
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key, value=value, stored_at=self._clock(), ttl_seconds=ttl_seconds,
            )
        return True

    def purge_expired(self) -> int:
        """Optional sweep. Never required for correctness."""
        now = self._clock()
        with self._lock:
            dead = [k for k, e in self._entries.items() if e.expired(now)]
            for k in dead:
                del self._entries[k]
        return len(dead)

    def __len__(self) -> int:
        return len(self._entries)


class RedisBackend(CacheBackend):
    """
    Redis-backed TTL store (SETEX). Connects lazily on first use; if Redis
    cannot be reached the backend disables itself and becomes a pass-through.
    """

    name = "redis"

    def __init__(self, redis_url: str, client: Optional["redis.Redis"] = None):
        self._url = redis_url
        self._pool = None
        self._client: Optional[redis.Redis] = client
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _connect(self) -> "redis.Redis | None":
        """Lazy connect: only opens a connection when first used."""
        if self._client is None:
            try:
                self._pool = redis.ConnectionPool.from_url(
                    self._url,
                    max_connections=20,
                    decode_responses=True,
                    socket_connect_timeout=3,
                    socket_timeout=2,
                    retry_on_timeout=True,
                )
                self._client = redis.Redis(connection_pool=self._pool)
                self._client.ping()
                logger.info("cache_backend_connected", url=self._url.split("@")[-1])
            except redis.RedisError as e:
                logger.warning("cache_backend_unavailable", error=str(e))
                self._enabled = False
                self._client = None
        return self._client

    def _call(self, fn: Callable[["redis.Redis"], Any]) -> Any:
        if not self._enabled:
            return None
        client = self._connect()
        if client is None:
            return None
        try:
            return fn(client)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def get(self, key: str) -> Optional[str]:
        return self._call(lambda c: c.get(key))

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return False
        return bool(self._call(lambda c: c.setex(key, ttl_seconds, value)))

    def close(self) -> None:
        if self._pool:
            self._pool.disconnect()
            logger.info("cache_backend_disconnected")


def build_backend(settings: Optional[Settings] = None) -> CacheBackend:
    """
    auto   → Redis when REDIS_URL is set, else in-memory
    memory → in-memory
    redis  → Redis (REDIS_URL required)
    none   → disabled
    """
    settings = settings or get_settings()
    choice = settings.CACHE_BACKEND
    if choice == "none":
        return NullBackend()
    if choice == "redis" or (choice == "auto" and settings.REDIS_URL):
        if not settings.REDIS_URL:
            logger.warning("cache_backend_unavailable", error="REDIS_URL not set")
            return NullBackend()
        return RedisBackend(settings.REDIS_URL)
    return MemoryBackend()


# ── Typed stores ──────────────────────────────────

class _JsonStore:
    def __init__(self, backend: CacheBackend):
        self.backend = backend

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self.backend.get(key)
        except Exception as e:  # any backend, any failure: treat as a miss
            logger.warning("cache_get_error", key=key, error=str(e))
            return None
        if raw is None:
            logger.debug("cache_miss", key=key)
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("cache_payload_corrupt", key=key, error=str(e))
            return None
        logger.debug("cache_hit", key=key)
        return data

    def _write(self, key: str, payload: Dict[str, Any], ttl: int) -> bool:
        try:
            stored = self.backend.set(key, json.dumps(payload, default=str), ttl)
        except Exception as e:
            logger.warning("cache_set_error", key=key, error=str(e))
            return False
        if stored:
            logger.debug("cache_set", key=key, ttl=ttl)
        return stored


class SignalCache(_JsonStore):
    """Per-signal, per-domain results with signal-type-specific TTLs."""

    def __init__(self, backend: CacheBackend, settings: Optional[Settings] = None):
        super().__init__(backend)
        self.settings = settings or get_settings()

    @staticmethod
    def key(signal_type: SignalType, domain: str) -> str:
        return f"{KEY_PREFIX}:signal:{signal_type.value}:{normalize_domain(domain)}"

    def ttl_for(self, result: SignalResult) -> int:
        ttl = self.settings.signal_ttls[result.signal_type]
        if result.status == SignalStatus.DANGER:
            ttl = min(ttl, self.settings.CACHE_TTL_DANGER_MAX)
        if isinstance(result.details, HeuristicsDetails) and result.details.storefront_scan_failed:
            ttl = min(ttl, self.settings.CACHE_TTL_REVIEWS)
        return ttl

    def get(self, signal_type: SignalType, domain: str) -> Optional[SignalResult]:
        data = self._read(self.key(signal_type, domain))
        if data is None:
            return None
        try:
            return SignalResult.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("cache_payload_corrupt", signal=signal_type.value, error=str(e))
            return None

    def set(self, result: SignalResult, domain: str, ttl: Optional[int] = None) -> bool:
        return self._write(
            self.key(result.signal_type, domain),
            result.to_dict(),
            self.ttl_for(result) if ttl is None else ttl,
        )


class AggregateCache(_JsonStore):
    """Final verdict per domain, single fixed TTL."""

    def __init__(self, backend: CacheBackend, settings: Optional[Settings] = None):
        super().__init__(backend)
        self.settings = settings or get_settings()

    @staticmethod
    def key(domain: str) -> str:
        return f"{KEY_PREFIX}:aggregate:{normalize_domain(domain)}"

    def get(self, domain: str) -> Optional[AggregateResult]:
        data = self._read(self.key(domain))
        if data is None:
            return None
        try:
            return AggregateResult.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("cache_payload_corrupt", domain=domain, error=str(e))
            return None

    def ttl_for(self, result: AggregateResult) -> int:
        """A verdict missing any signal is re-evaluated as soon as the shortest signal slot."""
        if all(s.is_available for s in result.signals):
            return self.settings.CACHE_TTL_AGGREGATE
        return min(self.settings.CACHE_TTL_DANGER_MAX, *self.settings.signal_ttls.values())

    def set(self, result: AggregateResult, ttl: Optional[int] = None) -> bool:
        return self._write(
            self.key(result.domain),
            result.to_dict(),
            self.ttl_for(result) if ttl is None else ttl,
        )
