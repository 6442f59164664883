"""
ShopTrust — Signal Orchestrator
Every collector is a sensor. Each sensor reads its own cache slot first.

Flow per check:
    1. Signal cache hit      → return it verbatim
    2. Miss                  → call the collector, bounded by wait_for
    3. Fresh result          → store with its signal-type TTL
    4. Any failure / timeout → neutral placeholder (never cached)

All checks run in parallel and share nothing but the cache.
"""
import asyncio
import time
from typing import Dict, List, Optional, Tuple

import structlog

from shoptrust.compute.cache import SignalCache
from shoptrust.compute.collectors import Collector
from shoptrust.compute.targets import extract_domain, normalize_url
from shoptrust.errors import WeightConfigurationError
from shoptrust.trust.models import SignalResult, SignalType
from shoptrust.trust.weights import DEFAULT_POLICY, WeightingPolicy

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 15.0


async def _timed_collect(
    collector: Collector, url: str, timeout: float,
) -> Tuple[SignalResult, float]:
    start = time.time()
    result = await asyncio.wait_for(collector(url), timeout=timeout)
    return result, round((time.time() - start) * 1000, 2)


async def cached_check(
    signal_type: SignalType,
    collector: Collector,
    url: str,
    domain: str,
    cache: Optional[SignalCache],
    timeout: float = DEFAULT_TIMEOUT,
) -> SignalResult:
    """One sensor: cache slot, then the collector. Raises on collector failure."""
    if cache is not None:
        cached = cache.get(signal_type, domain)
        if cached is not None:
            return cached

    result, elapsed_ms = await _timed_collect(collector, url, timeout)
    if result.signal_type != signal_type:
        raise TypeError(
            f"collector for {signal_type.value} returned {result.signal_type.value}"
        )
    logger.debug("signal_collected", signal=signal_type.value, domain=domain, ms=elapsed_ms)

    if cache is not None:
        cache.set(result, domain)
    return result


async def observe_domain(
    url: str,
    collectors: Dict[SignalType, Collector],
    cache: Optional[SignalCache] = None,
    policy: WeightingPolicy = DEFAULT_POLICY,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[SignalResult]:
    """
    Run every sensor on a domain in parallel.
    Returns one SignalResult per collector, in registration order. A sensor
    that raises or times out is reported as a neutral placeholder instead.
    """
    normalized = normalize_url(url)
    domain = extract_domain(url)

    keys = list(collectors.keys())
    coros = [
        cached_check(signal_type, collectors[signal_type], normalized, domain, cache, timeout)
        for signal_type in keys
    ]
    results_list = await asyncio.gather(*coros, return_exceptions=True)

    signals: List[SignalResult] = []
    for signal_type, res in zip(keys, results_list):
        if isinstance(res, SignalResult):
            signals.append(res)
            continue
        if isinstance(res, WeightConfigurationError):
            raise res
        if isinstance(res, asyncio.TimeoutError):
            error = f"timed out after {timeout}s"
        else:
            error = str(res) or type(res).__name__
        logger.warning(
            "signal_check_failed",
            signal=signal_type.value,
            domain=domain,
            error=error[:200],
        )
        signals.append(SignalResult.unavailable(signal_type, policy.weight_for(signal_type), error=error))

    return signals
