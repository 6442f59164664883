"""
ShopTrust — Evaluation Pipeline
Bridges the orchestrator and the scoring engine behind one entry point.

Flow:
    1. Aggregate cache hit   → return it
    2. Observe the domain    (all sensors in parallel, each with its own cache slot)
    3. Score                 (weights, blend, overrides, bullets)
    4. Cache the verdict
    5. Return

Two ways in:
    await TrustEvaluator.evaluate(url)   # async, used by the HTTP transport
    evaluate(url)                        # blocking wrapper around asyncio.run
"""
import asyncio
import dataclasses
import time
from typing import Dict, Optional

import httpx
import structlog

from shoptrust.compute.cache import (
    AggregateCache, CacheBackend, SignalCache, build_backend,
)
from shoptrust.compute.collectors import Collector, build_collectors
from shoptrust.compute.mock_collectors import build_mock_collectors
from shoptrust.compute.sensors import DEFAULT_TIMEOUT, observe_domain
from shoptrust.compute.targets import extract_domain, normalize_url
from shoptrust.config import Settings, get_settings
from shoptrust.trust.engine import compute_score
from shoptrust.trust.models import AggregateResult, SignalType
from shoptrust.trust.weights import DEFAULT_POLICY, WeightingPolicy, get_policy

logger = structlog.get_logger()


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": settings.USER_AGENT},
        follow_redirects=True,
        verify=True,
        timeout=httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS, connect=5.0),
    )


class TrustEvaluator:
    """
    One configured evaluation stack: collectors, both caches, one policy.
    Owns its httpx client when it created it; never owns the cache backend.
    """

    def __init__(
        self,
        collectors: Dict[SignalType, Collector],
        signal_cache: Optional[SignalCache] = None,
        aggregate_cache: Optional[AggregateCache] = None,
        policy: WeightingPolicy = DEFAULT_POLICY,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.collectors = collectors
        self.signal_cache = signal_cache
        self.aggregate_cache = aggregate_cache
        self.policy = policy
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        backend: Optional[CacheBackend] = None,
    ) -> "TrustEvaluator":
        settings = settings or get_settings()
        policy = get_policy(settings.WEIGHT_POLICY)
        if backend is None:
            backend = build_backend(settings)

        client = None
        if settings.USE_MOCKS:
            collectors = build_mock_collectors(policy)
        else:
            client = build_http_client(settings)
            collectors = build_collectors(client, settings, policy)

        logger.info(
            "evaluator_initialized",
            policy=policy.version,
            cache_backend=backend.name,
            mocks=settings.USE_MOCKS,
        )
        return cls(
            collectors=collectors,
            signal_cache=SignalCache(backend, settings),
            aggregate_cache=AggregateCache(backend, settings),
            policy=policy,
            timeout=settings.SIGNAL_TIMEOUT_SECONDS,
            client=client,
        )

    @property
    def cache_backend_name(self) -> str:
        if self.aggregate_cache is not None:
            return self.aggregate_cache.backend.name
        return "none"

    async def evaluate(self, url: str, force_refresh: bool = False) -> AggregateResult:
        """
        Full verdict for one URL. Never fails because of an upstream provider;
        only a broken weighting policy propagates.
        force_refresh skips the aggregate cache (signal slots still apply).
        """
        start = time.time()
        normalized = normalize_url(url)
        domain = extract_domain(url)

        if self.aggregate_cache is not None and not force_refresh:
            cached = self.aggregate_cache.get(domain)
            if cached is not None:
                logger.info("evaluation_cache_hit", domain=domain, score=cached.score)
                return dataclasses.replace(cached, url=normalized)

        signals = await observe_domain(
            normalized,
            self.collectors,
            cache=self.signal_cache,
            policy=self.policy,
            timeout=self.timeout,
        )
        result = compute_score(normalized, domain, signals, policy=self.policy)

        if self.aggregate_cache is not None:
            self.aggregate_cache.set(result)

        logger.info(
            "evaluation_complete",
            domain=domain,
            score=result.score,
            level=result.level.value,
            overrides=list(result.overrides_applied),
            unavailable=[s.signal_type.value for s in result.signals if not s.is_available],
            duration_ms=round((time.time() - start) * 1000, 2),
        )
        return result

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# ── Module-level singletons ───────────────────────

_backend: Optional[CacheBackend] = None
_evaluator: Optional[TrustEvaluator] = None


def get_backend() -> CacheBackend:
    global _backend
    if _backend is None:
        _backend = build_backend(get_settings())
    return _backend


def get_evaluator() -> TrustEvaluator:
    global _evaluator
    if _evaluator is None:
        _evaluator = TrustEvaluator.from_settings(get_settings(), backend=get_backend())
    return _evaluator


async def close_evaluator() -> None:
    global _evaluator
    if _evaluator is not None:
        await _evaluator.aclose()
    _evaluator = None


def evaluate(url: str, settings: Optional[Settings] = None) -> AggregateResult:
    """
    Blocking entry point. Each call runs its own event loop with a fresh
    evaluator; the cache backend is shared across calls.
    Must not be called from inside a running event loop.
    """
    async def _run() -> AggregateResult:
        evaluator = TrustEvaluator.from_settings(settings or get_settings(), backend=get_backend())
        try:
            return await evaluator.evaluate(url)
        finally:
            await evaluator.aclose()

    return asyncio.run(_run())


def shutdown() -> None:
    """Clean shutdown of pipeline resources."""
    global _backend, _evaluator
    if _backend is not None:
        _backend.close()
    _backend = None
    _evaluator = None
    logger.info("pipeline_shutdown")
