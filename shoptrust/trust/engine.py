"""
ShopTrust — Trust Scoring Engine

Turns the full set of SignalResults for a domain into one 0-100 verdict.

    1. Weights    taken from the WeightingPolicy (reviews/reputation
                    complementary pair sized by review volume)
    2. Blend      round(Σ score·weight / Σ weight)
    3. Overrides  non-linear safety rules that can only lower the blend:
                        MALWARE_DETECTED      → 0, terminal
                        YOUNG_DOMAIN          → min(score, 50)
                        CRYPTO_ONLY_PAYMENTS  → score - 20
                        INSUFFICIENT_REVIEWS  → min(score, 60)
    4. Level      safe ≥ 70, caution ≥ 40, else danger
    5. Bullets    the four worst signals, in a fixed priority order

Scoring never fails on missing input: an absent signal is scored as a
neutral 50 at its configured weight, so one dead upstream cannot zero the
result or push it to an extreme. The only error raised here is a
WeightConfigurationError, which is a deployment defect.
"""
from __future__ import annotations

import dataclasses
import math
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from shoptrust.trust.models import (
    AggregateResult, Bullet, BulletIcon, DomainAgeDetails, HeuristicsDetails,
    MalwareDetails, ReviewsDetails, SignalResult, SignalStatus, SignalType,
    TrustLevel, clamp_score, signals_by_type,
)
from shoptrust.trust.weights import DEFAULT_POLICY, WeightingPolicy

logger = structlog.get_logger()


# ── Thresholds ────────────────────────────────────

SAFE_THRESHOLD = 70
CAUTION_THRESHOLD = 40

YOUNG_DOMAIN_DAYS = 30
YOUNG_DOMAIN_CAP = 50
CRYPTO_ONLY_PENALTY = 20
MIN_REVIEWS = 20
INSUFFICIENT_REVIEWS_CAP = 60

NEUTRAL_SCORE = 50
MAX_BULLETS = 4

_STATUS_RANK: Dict[SignalStatus, int] = {
    SignalStatus.DANGER: 0,
    SignalStatus.WARNING: 1,
    SignalStatus.UNKNOWN: 2,
    SignalStatus.SAFE: 3,
}

BULLET_PRIORITY: Tuple[SignalType, ...] = (
    SignalType.MALWARE_FILTER,
    SignalType.DOMAIN_AGE,
    SignalType.CERTIFICATE,
    SignalType.REVIEWS,
    SignalType.REPUTATION,
    SignalType.HEURISTICS,
)

_ICONS: Dict[SignalStatus, BulletIcon] = {
    SignalStatus.SAFE: BulletIcon.CHECK,
    SignalStatus.WARNING: BulletIcon.WARNING,
    SignalStatus.DANGER: BulletIcon.DANGER,
    SignalStatus.UNKNOWN: BulletIcon.WARNING,
}


# ── Weights & blend ───────────────────────────────

def review_count(signals: Dict[SignalType, SignalResult]) -> Optional[int]:
    reviews = signals.get(SignalType.REVIEWS)
    if reviews and isinstance(reviews.details, ReviewsDetails):
        return reviews.details.total_reviews
    return None


def apply_weights(
    signals: Dict[SignalType, SignalResult],
    policy: WeightingPolicy,
) -> List[SignalResult]:
    """
    One result per signal type, carrying the policy's weight.
    Types nobody reported get a neutral placeholder.
    """
    weights = policy.weights_for(review_count(signals))
    weighted = []
    for signal_type in SignalType:
        weight = weights[signal_type]
        current = signals.get(signal_type)
        if current is None:
            weighted.append(SignalResult.unavailable(signal_type, weight, error="not reported"))
        elif current.weight != weight:
            weighted.append(dataclasses.replace(current, weight=weight))
        else:
            weighted.append(current)
    return weighted


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def blend(signals: Iterable[SignalResult]) -> int:
    total_weight = 0
    weighted_sum = 0
    for s in signals:
        weighted_sum += s.score * s.weight
        total_weight += s.weight
    if total_weight == 0:
        return NEUTRAL_SCORE
    return _round_half_up(weighted_sum / total_weight)


# ── Overrides ─────────────────────────────────────

def is_malicious(signals: Dict[SignalType, SignalResult]) -> bool:
    malware = signals.get(SignalType.MALWARE_FILTER)
    if malware and isinstance(malware.details, MalwareDetails):
        return malware.details.is_malware or malware.details.is_phishing
    return False


def apply_overrides(
    score: int,
    signals: Dict[SignalType, SignalResult],
) -> Tuple[int, List[str]]:
    """
    Rules 2-4. Each one can only lower the running score.
    Rule 1 (malware) is handled before the blend in compute_score.
    """
    applied: List[str] = []

    age = signals.get(SignalType.DOMAIN_AGE)
    if age and isinstance(age.details, DomainAgeDetails):
        days = age.details.age_days
        if days is not None and days < YOUNG_DOMAIN_DAYS:
            score = min(score, YOUNG_DOMAIN_CAP)
            applied.append("YOUNG_DOMAIN")

    heuristics = signals.get(SignalType.HEURISTICS)
    if heuristics and isinstance(heuristics.details, HeuristicsDetails):
        if heuristics.details.crypto_only_payments:
            score = max(0, score - CRYPTO_ONLY_PENALTY)
            applied.append("CRYPTO_ONLY_PAYMENTS")

    reviews = signals.get(SignalType.REVIEWS)
    if reviews and isinstance(reviews.details, ReviewsDetails):
        if reviews.details.total_reviews < MIN_REVIEWS:
            score = min(score, INSUFFICIENT_REVIEWS_CAP)
            applied.append("INSUFFICIENT_REVIEWS")

    return score, applied


# ── Verdict ───────────────────────────────────────

def trust_level(score: int) -> TrustLevel:
    if score >= SAFE_THRESHOLD:
        return TrustLevel.SAFE
    if score >= CAUTION_THRESHOLD:
        return TrustLevel.CAUTION
    return TrustLevel.DANGER


def _priority(signal_type: SignalType) -> int:
    return BULLET_PRIORITY.index(signal_type)


def generate_bullets(signals: Iterable[SignalResult]) -> Tuple[Bullet, ...]:
    """Worst status first; ties broken by the fixed signal priority."""
    ranked = sorted(
        signals,
        key=lambda s: (_STATUS_RANK[s.status], _priority(s.signal_type)),
    )
    return tuple(
        Bullet(icon=_ICONS[s.status], text=s.message)
        for s in ranked[:MAX_BULLETS]
    )


# ── Main Entry Point ──────────────────────────────

def compute_score(
    url: str,
    domain: str,
    signals: Iterable[SignalResult],
    policy: WeightingPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
) -> AggregateResult:
    """
    THE scoring function.
    Takes whatever signals were collected, returns the verdict.
    """
    by_type = signals_by_type(list(signals))
    weighted = apply_weights(by_type, policy)
    weighted_by_type = {s.signal_type: s for s in weighted}

    if is_malicious(weighted_by_type):
        final_score, overrides = 0, ["MALWARE_DETECTED"]
    else:
        raw_score = blend(weighted)
        final_score, overrides = apply_overrides(raw_score, weighted_by_type)
        final_score = clamp_score(final_score)

    level = trust_level(final_score)
    logger.debug(
        "score_computed",
        domain=domain,
        score=final_score,
        level=level.value,
        overrides=overrides,
        policy=policy.version,
    )

    return AggregateResult(
        url=url,
        domain=domain,
        score=final_score,
        level=level,
        bullets=generate_bullets(weighted),
        signals=tuple(weighted),
        computed_at=now or datetime.now(timezone.utc),
        overrides_applied=tuple(overrides),
        policy_version=policy.version,
    )
