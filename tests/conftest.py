"""
Shared fixtures. Nothing here touches the network or a real Redis.
"""
import pytest

from shoptrust.config import Settings
from shoptrust.trust.models import (
    CertificateDetails, DomainAgeDetails, HeuristicsDetails, MalwareDetails,
    ReputationDetails, ReviewsDetails, SignalResult, SignalStatus, SignalType,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Environment-independent settings with every provider configured."""
    s = Settings()
    s.REDIS_URL = ""
    s.CACHE_BACKEND = "memory"
    s.GOOGLE_SAFE_BROWSING_KEY = "gsb-test"
    s.IPQS_API_KEY = "ipqs-test"
    s.SERP_API_KEY = "serp-test"
    s.STOREFRONT_SCAN_ENABLED = False
    s.USE_MOCKS = False
    s.WEIGHT_POLICY = "complementary-v2"
    s.SIGNAL_TIMEOUT_SECONDS = 2.0
    return s


_DEFAULT_DETAILS = {
    SignalType.MALWARE_FILTER: MalwareDetails,
    SignalType.CERTIFICATE: lambda **kw: CertificateDetails(is_valid=True, days_until_expiry=kw.get("days_until_expiry", 200)),
    SignalType.REPUTATION: lambda **kw: ReputationDetails(risk_score=kw.get("risk_score", 0)),
    SignalType.HEURISTICS: HeuristicsDetails,
}


@pytest.fixture
def make_signal():
    """
    make_signal(SignalType.REVIEWS, 90, total_reviews=180)
    Keyword arguments feed the details of the signal's own type.
    """
    def _make(signal_type, score=100, status=SignalStatus.SAFE, weight=0, message=None, details=None, **kw):
        if details is None:
            if signal_type == SignalType.DOMAIN_AGE:
                details = DomainAgeDetails(age_days=kw.get("age_days", 800))
            elif signal_type == SignalType.REVIEWS:
                total = kw.get("total_reviews", 500)
                details = ReviewsDetails(
                    aggregated_rating=kw.get("rating", 4.5),
                    total_reviews=total,
                    source_count=1,
                    insufficient_reviews=total < 20,
                )
            else:
                details = _DEFAULT_DETAILS[signal_type](**kw)
        return SignalResult(
            signal_type=signal_type,
            status=status,
            score=score,
            weight=weight,
            message=message or f"{signal_type.value} {status.value}",
            details=details,
        )
    return _make


@pytest.fixture
def perfect_signals(make_signal):
    """Every signal present and perfect; review volume above every threshold."""
    return [make_signal(t) for t in SignalType]
