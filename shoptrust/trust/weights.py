"""
ShopTrust — Weighting Policies

One explicit, versioned policy object decides how much each signal counts.
The scoring engine never hard-codes weights; it asks the policy.

complementary-v2 (default)
    Reviews and reputation share a 55-point pool. Few reviews may be
    fabricated, so the automated reputation score carries more of the pool;
    past a volume threshold, aggregated user feedback takes over.

        review count      reviews   reputation
        R < 50              10         45
        50 <= R <= 200      20         35
        R > 200             30         25

    domain-age, certificate, heuristics: 15 each. malware-filter: 0
    (filter only; it acts through the override, never through the blend).

fixed-v1 (superseded)
    The first deployment's static split. Kept so old and new policies can be
    compared side by side; never blended with v2.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from shoptrust.errors import WeightConfigurationError
from shoptrust.trust.models import SignalType


TOTAL_WEIGHT = 100


@dataclass(frozen=True)
class PoolTier:
    """Split of the complementary pool while review count <= max_reviews."""
    max_reviews: Optional[int]              # None = open-ended top tier
    primary: int
    secondary: int


@dataclass(frozen=True)
class ComplementaryPool:
    primary: SignalType                     # self-weighted by its own volume
    secondary: SignalType                   # absorbs what primary gives up
    tiers: Tuple[PoolTier, ...]

    def split(self, volume: int) -> Tuple[int, int]:
        for tier in self.tiers:
            if tier.max_reviews is None or volume <= tier.max_reviews:
                return tier.primary, tier.secondary
        last = self.tiers[-1]
        return last.primary, last.secondary


@dataclass(frozen=True)
class WeightingPolicy:
    version: str
    fixed: Dict[SignalType, int] = field(default_factory=dict)
    pool: Optional[ComplementaryPool] = None

    def __post_init__(self):
        # Every tier of the pool must produce a valid distribution.
        if self.pool:
            for tier in self.pool.tiers:
                self._validate(self._assemble(tier.primary, tier.secondary))
        else:
            self._validate(dict(self.fixed))

    def _assemble(self, primary: int, secondary: int) -> Dict[SignalType, int]:
        weights = dict(self.fixed)
        if self.pool:
            weights[self.pool.primary] = primary
            weights[self.pool.secondary] = secondary
        return weights

    def _validate(self, weights: Dict[SignalType, int]) -> None:
        missing = [t.value for t in SignalType if t not in weights]
        if missing:
            raise WeightConfigurationError(
                f"policy {self.version!r} has no weight for: {', '.join(missing)}"
            )
        if any(w < 0 for w in weights.values()):
            raise WeightConfigurationError(f"policy {self.version!r} has a negative weight")
        total = sum(weights.values())
        if total != TOTAL_WEIGHT:
            raise WeightConfigurationError(
                f"policy {self.version!r} weights sum to {total}, expected {TOTAL_WEIGHT}"
            )

    def weights_for(self, review_count: Optional[int] = None) -> Dict[SignalType, int]:
        """
        Full weight table for one evaluation.
        Unknown review count (reviews unavailable) is treated as zero reviews.
        """
        if not self.pool:
            weights = dict(self.fixed)
        else:
            weights = self._assemble(*self.pool.split(review_count or 0))
        self._validate(weights)
        return weights

    def weight_for(self, signal_type: SignalType, review_count: Optional[int] = None) -> int:
        return self.weights_for(review_count)[signal_type]


# ── Registered policies ───────────────────────────

COMPLEMENTARY_V2 = WeightingPolicy(
    version="complementary-v2",
    fixed={
        SignalType.MALWARE_FILTER: 0,
        SignalType.DOMAIN_AGE: 15,
        SignalType.CERTIFICATE: 15,
        SignalType.HEURISTICS: 15,
    },
    pool=ComplementaryPool(
        primary=SignalType.REVIEWS,
        secondary=SignalType.REPUTATION,
        tiers=(
            PoolTier(max_reviews=49, primary=10, secondary=45),
            PoolTier(max_reviews=200, primary=20, secondary=35),
            PoolTier(max_reviews=None, primary=30, secondary=25),
        ),
    ),
)

FIXED_V1 = WeightingPolicy(
    version="fixed-v1",
    fixed={
        SignalType.MALWARE_FILTER: 0,
        SignalType.DOMAIN_AGE: 10,
        SignalType.CERTIFICATE: 10,
        SignalType.HEURISTICS: 10,
        SignalType.REPUTATION: 30,
        SignalType.REVIEWS: 40,
    },
)

POLICIES: Dict[str, WeightingPolicy] = {
    COMPLEMENTARY_V2.version: COMPLEMENTARY_V2,
    FIXED_V1.version: FIXED_V1,
}

DEFAULT_POLICY = COMPLEMENTARY_V2


def get_policy(version: Optional[str] = None) -> WeightingPolicy:
    if not version:
        return DEFAULT_POLICY
    try:
        return POLICIES[version]
    except KeyError:
        raise WeightConfigurationError(
            f"unknown weighting policy {version!r}; known: {', '.join(sorted(POLICIES))}"
        ) from None
