"""
Orchestrator: parallel checks, cache-first, failures isolated as placeholders.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from shoptrust.compute.cache import MemoryBackend, SignalCache
from shoptrust.compute.sensors import observe_domain
from shoptrust.errors import CollectorError, WeightConfigurationError
from shoptrust.trust.models import (
    UNAVAILABLE_MESSAGE, SignalStatus, SignalType, UnavailableDetails,
)
from shoptrust.trust.weights import COMPLEMENTARY_V2


@pytest.fixture
def collectors(perfect_signals):
    by_type = {s.signal_type: s for s in perfect_signals}
    return {t: AsyncMock(return_value=by_type[t]) for t in SignalType}


@pytest.fixture
def signal_cache(settings, clock):
    return SignalCache(MemoryBackend(clock=clock), settings)


@pytest.mark.asyncio
async def test_all_checks_succeed(collectors, perfect_signals):
    results = await observe_domain("www.shop.com", collectors)
    assert results == perfect_signals
    for collector in collectors.values():
        collector.assert_awaited_once_with("https://www.shop.com")


@pytest.mark.asyncio
async def test_failing_check_becomes_placeholder(collectors):
    collectors[SignalType.REPUTATION] = AsyncMock(
        side_effect=CollectorError("reputation", "upstream returned 503"),
    )
    results = await observe_domain("shop.com", collectors, policy=COMPLEMENTARY_V2)
    rep = next(r for r in results if r.signal_type == SignalType.REPUTATION)
    assert rep.status == SignalStatus.UNKNOWN
    assert rep.score == 50
    assert rep.message == UNAVAILABLE_MESSAGE
    assert rep.weight == COMPLEMENTARY_V2.weight_for(SignalType.REPUTATION)
    assert isinstance(rep.details, UnavailableDetails)
    assert "503" in rep.details.error
    assert sum(1 for r in results if r.is_available) == len(SignalType) - 1


@pytest.mark.asyncio
async def test_slow_check_times_out(collectors):
    async def slow(url):
        await asyncio.sleep(5)

    collectors[SignalType.CERTIFICATE] = slow
    results = await observe_domain("shop.com", collectors, timeout=0.05)
    cert = next(r for r in results if r.signal_type == SignalType.CERTIFICATE)
    assert cert.status == SignalStatus.UNKNOWN
    assert "timed out" in cert.details.error


@pytest.mark.asyncio
async def test_unexpected_exception_is_isolated(collectors):
    collectors[SignalType.REVIEWS] = AsyncMock(side_effect=KeyError("organic_results"))
    results = await observe_domain("shop.com", collectors)
    assert len(results) == len(SignalType)
    assert next(r for r in results if r.signal_type == SignalType.REVIEWS).status == SignalStatus.UNKNOWN


@pytest.mark.asyncio
async def test_cache_hit_skips_collector(collectors, signal_cache, make_signal):
    cached = make_signal(SignalType.DOMAIN_AGE, 85, age_days=500)
    signal_cache.set(cached, "shop.com")
    results = await observe_domain("https://www.shop.com", collectors, cache=signal_cache)
    assert next(r for r in results if r.signal_type == SignalType.DOMAIN_AGE) == cached
    collectors[SignalType.DOMAIN_AGE].assert_not_awaited()


@pytest.mark.asyncio
async def test_fresh_results_are_cached_placeholders_are_not(collectors, signal_cache):
    collectors[SignalType.REVIEWS] = AsyncMock(side_effect=CollectorError("reviews", "boom"))
    await observe_domain("shop.com", collectors, cache=signal_cache)
    assert signal_cache.get(SignalType.CERTIFICATE, "shop.com") is not None
    assert signal_cache.get(SignalType.REVIEWS, "shop.com") is None


@pytest.mark.asyncio
async def test_weight_configuration_error_propagates(collectors):
    collectors[SignalType.HEURISTICS] = AsyncMock(side_effect=WeightConfigurationError("sum 90"))
    with pytest.raises(WeightConfigurationError):
        await observe_domain("shop.com", collectors)


@pytest.mark.asyncio
async def test_collector_returning_wrong_type_is_a_failure(collectors, make_signal):
    collectors[SignalType.CERTIFICATE] = AsyncMock(return_value=make_signal(SignalType.REVIEWS))
    results = await observe_domain("shop.com", collectors)
    assert next(r for r in results if r.signal_type == SignalType.CERTIFICATE).status == SignalStatus.UNKNOWN


@pytest.mark.asyncio
async def test_checks_run_concurrently(perfect_signals):
    by_type = {s.signal_type: s for s in perfect_signals}
    started = []
    all_started = asyncio.Event()

    def gated(signal_type):
        async def collect(url):
            started.append(signal_type)
            if len(started) == len(SignalType):
                all_started.set()
            # Only returns once every other check is in flight too.
            await asyncio.wait_for(all_started.wait(), timeout=1.0)
            return by_type[signal_type]
        return collect

    results = await observe_domain("shop.com", {t: gated(t) for t in SignalType}, timeout=2.0)
    assert all(r.is_available for r in results)
    assert set(started) == set(SignalType)
