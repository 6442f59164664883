"""
ShopTrust — Scenario Collectors (offline mode)

Deterministic stand-ins for the network collectors, enabled with
SHOPTRUST_USE_MOCKS=true. The scenario is picked from keywords in the
domain, then run through the same scoring rubrics as the real collectors:

    scam / fake / phish   → flagged by the malware filter
    new                   → registered 10 days ago
    crypto                → storefront accepts crypto only
    test-caution          → middling everywhere
    amazon / ebay / ...   → long-established retailer
    anything else         → healthy mid-size shop
"""
import re
from dataclasses import dataclass
from datetime import date, timedelta
from functools import partial
from typing import Dict, Optional, Tuple

from shoptrust.compute.collectors import (
    Collector, score_certificate, score_domain_age, score_reputation,
    score_reviews, with_payment_methods,
)
from shoptrust.compute.targets import extract_domain
from shoptrust.trust.heuristics import analyze_domain
from shoptrust.trust.models import (
    CertificateDetails, DomainAgeDetails, MalwareDetails, ReputationDetails,
    ReviewsDetails, ReviewSource, SignalResult, SignalStatus, SignalType,
)
from shoptrust.trust.weights import WeightingPolicy


@dataclass(frozen=True)
class MockScenario:
    name: str
    pattern: Optional["re.Pattern[str]"]
    is_malware: bool = False
    is_phishing: bool = False
    age_days: int = 3 * 365
    cert_valid: bool = True
    cert_days_left: int = 200
    risk_score: int = 20
    rating: Optional[float] = 4.1
    review_count: int = 120
    payment_methods: Tuple[str, ...] = ("card", "paypal")


SCENARIOS: Tuple[MockScenario, ...] = (
    MockScenario(
        name="scam",
        pattern=re.compile(r"scam|fake|truffa|phish", re.IGNORECASE),
        is_malware=True, is_phishing=True, age_days=7, cert_valid=False,
        risk_score=95, rating=1.0, review_count=5, payment_methods=("crypto",),
    ),
    MockScenario(
        name="young",
        pattern=re.compile(r"new", re.IGNORECASE),
        age_days=10, cert_days_left=85, risk_score=40, rating=None, review_count=0,
    ),
    MockScenario(
        name="crypto-only",
        pattern=re.compile(r"crypto", re.IGNORECASE),
        age_days=200, risk_score=55, rating=3.2, review_count=25, payment_methods=("crypto",),
    ),
    MockScenario(
        name="caution",
        pattern=re.compile(r"test-caution", re.IGNORECASE),
        age_days=90, risk_score=45, rating=3.0, review_count=50, payment_methods=("bank_transfer",),
    ),
    MockScenario(
        name="established",
        pattern=re.compile(r"amazon|ebay|zalando|mediaworld|unieuro", re.IGNORECASE),
        age_days=10 * 365, risk_score=5, rating=4.2, review_count=50000,
        payment_methods=("card", "paypal", "wallet"),
    ),
)

DEFAULT_SCENARIO = MockScenario(name="default", pattern=None)


def scenario_for(url: str) -> MockScenario:
    domain = extract_domain(url)
    for scenario in SCENARIOS:
        if scenario.pattern is not None and scenario.pattern.search(domain):
            return scenario
    return DEFAULT_SCENARIO


# ── Collectors ────────────────────────────────────

async def mock_malware_filter(url: str, policy: WeightingPolicy) -> SignalResult:
    s = scenario_for(url)
    threats = tuple(t for t, hit in (("MALWARE", s.is_malware), ("SOCIAL_ENGINEERING", s.is_phishing)) if hit)
    details = MalwareDetails(is_malware=s.is_malware, is_phishing=s.is_phishing, threats=threats)
    weight = policy.weight_for(SignalType.MALWARE_FILTER)
    if threats:
        return SignalResult(SignalType.MALWARE_FILTER, SignalStatus.DANGER, 0, weight,
                            "Site flagged as dangerous", details)
    return SignalResult(SignalType.MALWARE_FILTER, SignalStatus.SAFE, 100, weight,
                        "No threats detected", details)


async def mock_domain_age(url: str, policy: WeightingPolicy) -> SignalResult:
    s = scenario_for(url)
    score, status, message = score_domain_age(s.age_days)
    today = date.today()
    details = DomainAgeDetails(
        age_days=s.age_days,
        registrar="Example Registrar, Inc.",
        creation_date=(today - timedelta(days=s.age_days)).isoformat(),
        expiration_date=(today + timedelta(days=365)).isoformat(),
    )
    return SignalResult(SignalType.DOMAIN_AGE, status, score,
                        policy.weight_for(SignalType.DOMAIN_AGE), message, details)


async def mock_certificate(url: str, policy: WeightingPolicy) -> SignalResult:
    s = scenario_for(url)
    details = CertificateDetails(
        is_valid=s.cert_valid,
        issuer="Let's Encrypt" if s.cert_valid else None,
        subject=extract_domain(url),
        expires_at=(date.today() + timedelta(days=s.cert_days_left)).isoformat() if s.cert_valid else None,
        days_until_expiry=s.cert_days_left if s.cert_valid else None,
        protocol="TLSv1.3" if s.cert_valid else None,
    )
    score, status, message = score_certificate(details)
    return SignalResult(SignalType.CERTIFICATE, status, score,
                        policy.weight_for(SignalType.CERTIFICATE), message, details)


async def mock_reputation(url: str, policy: WeightingPolicy) -> SignalResult:
    s = scenario_for(url)
    details = ReputationDetails(
        risk_score=s.risk_score,
        is_phishing=s.is_phishing,
        is_malware=s.is_malware,
        is_suspicious=s.risk_score >= 75,
    )
    score, status, message = score_reputation(details)
    return SignalResult(SignalType.REPUTATION, status, score,
                        policy.weight_for(SignalType.REPUTATION), message, details)


async def mock_reviews(url: str, policy: WeightingPolicy) -> SignalResult:
    s = scenario_for(url)
    sources: Tuple[ReviewSource, ...] = ()
    if s.rating is not None:
        sources = (ReviewSource(
            name="Trustpilot",
            rating=s.rating,
            total_reviews=s.review_count,
            url=f"https://www.trustpilot.com/review/{extract_domain(url)}",
        ),)
    score, status, message = score_reviews(s.rating, s.review_count, len(sources))
    details = ReviewsDetails(
        aggregated_rating=s.rating,
        total_reviews=s.review_count,
        source_count=len(sources),
        sources=sources,
        insufficient_reviews=s.rating is None or s.review_count < 20,
    )
    return SignalResult(SignalType.REVIEWS, status, score,
                        policy.weight_for(SignalType.REVIEWS, s.review_count), message, details)


async def mock_heuristics(url: str, policy: WeightingPolicy) -> SignalResult:
    s = scenario_for(url)
    result = analyze_domain(extract_domain(url), weight=policy.weight_for(SignalType.HEURISTICS))
    return with_payment_methods(result, s.payment_methods)


def build_mock_collectors(policy: WeightingPolicy) -> Dict[SignalType, Collector]:
    return {
        SignalType.MALWARE_FILTER: partial(mock_malware_filter, policy=policy),
        SignalType.DOMAIN_AGE: partial(mock_domain_age, policy=policy),
        SignalType.CERTIFICATE: partial(mock_certificate, policy=policy),
        SignalType.REPUTATION: partial(mock_reputation, policy=policy),
        SignalType.REVIEWS: partial(mock_reviews, policy=policy),
        SignalType.HEURISTICS: partial(mock_heuristics, policy=policy),
    }
