"""
ShopTrust — Signal & Verdict Data Model

Every signal collaborator produces a SignalResult. The scoring engine turns a
list of them into one AggregateResult.

Signal-specific payloads are a tagged variant: one frozen dataclass per signal
type, each carrying a ``kind`` tag. Override rules dispatch on the concrete
variant, never on which keys happen to be present.

Wire format (to_dict / from_dict) follows the public JSON contract:
    {url, domain, score, level, bullets, signals, computedAt, ...}
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, Union


# ── Enums ─────────────────────────────────────────

class SignalType(str, Enum):
    MALWARE_FILTER = "malware-filter"
    DOMAIN_AGE     = "domain-age"
    CERTIFICATE    = "certificate"
    REPUTATION     = "reputation"
    REVIEWS        = "reviews"
    HEURISTICS     = "heuristics"


class SignalStatus(str, Enum):
    SAFE    = "safe"
    WARNING = "warning"
    DANGER  = "danger"
    UNKNOWN = "unknown"


class TrustLevel(str, Enum):
    SAFE    = "safe"
    CAUTION = "caution"
    DANGER  = "danger"


class BulletIcon(str, Enum):
    CHECK   = "check"
    WARNING = "warning"
    DANGER  = "danger"


class Severity(str, Enum):
    INFO    = "info"
    WARNING = "warning"
    DANGER  = "danger"


UNAVAILABLE_MESSAGE = "check unavailable"


def clamp_score(value: float) -> int:
    return int(min(max(value, 0), 100))


# ── Details variants ──────────────────────────────

@dataclass(frozen=True)
class _Details:
    kind: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        kwargs = {}
        for f in fields(cls):
            if f.name in data:
                value = data[f.name]
                kwargs[f.name] = tuple(value) if isinstance(value, list) else value
        return cls(**kwargs)


@dataclass(frozen=True)
class MalwareDetails(_Details):
    kind: ClassVar[str] = SignalType.MALWARE_FILTER.value
    is_malware: bool = False
    is_phishing: bool = False
    threats: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DomainAgeDetails(_Details):
    kind: ClassVar[str] = SignalType.DOMAIN_AGE.value
    age_days: Optional[int] = None          # None = registry gave no creation date
    registrar: Optional[str] = None
    creation_date: Optional[str] = None
    expiration_date: Optional[str] = None


@dataclass(frozen=True)
class CertificateDetails(_Details):
    kind: ClassVar[str] = SignalType.CERTIFICATE.value
    is_valid: bool = False
    issuer: Optional[str] = None
    subject: Optional[str] = None
    expires_at: Optional[str] = None
    days_until_expiry: Optional[int] = None
    protocol: Optional[str] = None


@dataclass(frozen=True)
class ReputationDetails(_Details):
    kind: ClassVar[str] = SignalType.REPUTATION.value
    risk_score: int = 0                     # provider's 0-100 fraud score
    is_phishing: bool = False
    is_malware: bool = False
    is_suspicious: bool = False
    is_parking: bool = False
    is_spamming: bool = False


@dataclass(frozen=True)
class ReviewSource:
    name: str
    rating: Optional[float] = None
    total_reviews: int = 0
    url: Optional[str] = None


@dataclass(frozen=True)
class ReviewsDetails(_Details):
    kind: ClassVar[str] = SignalType.REVIEWS.value
    aggregated_rating: Optional[float] = None
    total_reviews: int = 0
    source_count: int = 0
    sources: Tuple[ReviewSource, ...] = ()
    insufficient_reviews: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewsDetails":
        return cls(
            aggregated_rating=data.get("aggregated_rating"),
            total_reviews=data.get("total_reviews", 0),
            source_count=data.get("source_count", 0),
            sources=tuple(ReviewSource(**s) for s in data.get("sources", ())),
            insufficient_reviews=data.get("insufficient_reviews", True),
        )


@dataclass(frozen=True)
class HeuristicCheck:
    """Outcome of one lexical sub-check. Negative penalties are bonuses."""
    name: str
    penalty: int
    message: str
    severity: Severity = Severity.INFO


@dataclass(frozen=True)
class HeuristicsDetails(_Details):
    kind: ClassVar[str] = SignalType.HEURISTICS.value
    label: str = ""
    tld: str = ""
    total_penalty: int = 0
    checks: Tuple[HeuristicCheck, ...] = ()
    payment_methods: Tuple[str, ...] = ()
    crypto_only_payments: bool = False
    storefront_scan_failed: bool = False   # payment methods unknown, not absent

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["checks"] = [
            {**asdict(c), "severity": c.severity.value} for c in self.checks
        ]
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HeuristicsDetails":
        checks = tuple(
            HeuristicCheck(
                name=c["name"],
                penalty=c["penalty"],
                message=c["message"],
                severity=Severity(c.get("severity", "info")),
            )
            for c in data.get("checks", ())
        )
        return cls(
            label=data.get("label", ""),
            tld=data.get("tld", ""),
            total_penalty=data.get("total_penalty", 0),
            checks=checks,
            payment_methods=tuple(data.get("payment_methods", ())),
            crypto_only_payments=data.get("crypto_only_payments", False),
            storefront_scan_failed=data.get("storefront_scan_failed", False),
        )

    def check(self, name: str) -> Optional[HeuristicCheck]:
        for c in self.checks:
            if c.name == name:
                return c
        return None


@dataclass(frozen=True)
class UnavailableDetails(_Details):
    kind: ClassVar[str] = "unavailable"
    error: str = ""


Details = Union[
    MalwareDetails,
    DomainAgeDetails,
    CertificateDetails,
    ReputationDetails,
    ReviewsDetails,
    HeuristicsDetails,
    UnavailableDetails,
]

_DETAILS_BY_KIND: Dict[str, Type[_Details]] = {
    cls.kind: cls
    for cls in (
        MalwareDetails, DomainAgeDetails, CertificateDetails, ReputationDetails,
        ReviewsDetails, HeuristicsDetails, UnavailableDetails,
    )
}


def details_from_dict(data: Optional[Dict[str, Any]]) -> Details:
    if not data:
        return UnavailableDetails()
    cls = _DETAILS_BY_KIND.get(data.get("kind", ""))
    if cls is None:
        raise ValueError(f"unknown details kind: {data.get('kind')!r}")
    return cls.from_dict(data)


# ── Signal Result ─────────────────────────────────

@dataclass(frozen=True)
class SignalResult:
    """One independent check's opinion. Immutable once produced."""
    signal_type: SignalType
    status: SignalStatus
    score: int
    weight: int
    message: str
    details: Details = field(default_factory=UnavailableDetails)

    def __post_init__(self):
        object.__setattr__(self, "score", clamp_score(self.score))
        object.__setattr__(self, "weight", clamp_score(self.weight))

    @property
    def is_available(self) -> bool:
        return not isinstance(self.details, UnavailableDetails)

    @classmethod
    def unavailable(cls, signal_type: SignalType, weight: int, error: str = "") -> "SignalResult":
        """Neutral placeholder for a check that failed or never ran."""
        return cls(
            signal_type=signal_type,
            status=SignalStatus.UNKNOWN,
            score=50,
            weight=weight,
            message=UNAVAILABLE_MESSAGE,
            details=UnavailableDetails(error=error[:200]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signalType": self.signal_type.value,
            "status": self.status.value,
            "score": self.score,
            "weight": self.weight,
            "message": self.message,
            "details": self.details.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignalResult":
        return cls(
            signal_type=SignalType(data["signalType"]),
            status=SignalStatus(data["status"]),
            score=data["score"],
            weight=data["weight"],
            message=data["message"],
            details=details_from_dict(data.get("details")),
        )


# ── Aggregate Result ──────────────────────────────

@dataclass(frozen=True)
class Bullet:
    icon: BulletIcon
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {"icon": self.icon.value, "text": self.text}


@dataclass(frozen=True)
class AggregateResult:
    """The final verdict for a URL. Every field is API-ready."""
    url: str
    domain: str
    score: int
    level: TrustLevel
    bullets: Tuple[Bullet, ...]
    signals: Tuple[SignalResult, ...]
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    overrides_applied: Tuple[str, ...] = ()
    policy_version: str = ""

    def signal(self, signal_type: SignalType) -> Optional[SignalResult]:
        for s in self.signals:
            if s.signal_type == signal_type:
                return s
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "domain": self.domain,
            "score": self.score,
            "level": self.level.value,
            "bullets": [b.to_dict() for b in self.bullets],
            "signals": [s.to_dict() for s in self.signals],
            "computedAt": self.computed_at.isoformat(),
            "overridesApplied": list(self.overrides_applied),
            "policyVersion": self.policy_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateResult":
        return cls(
            url=data["url"],
            domain=data["domain"],
            score=data["score"],
            level=TrustLevel(data["level"]),
            bullets=tuple(
                Bullet(icon=BulletIcon(b["icon"]), text=b["text"])
                for b in data.get("bullets", [])
            ),
            signals=tuple(SignalResult.from_dict(s) for s in data.get("signals", [])),
            computed_at=datetime.fromisoformat(data["computedAt"]),
            overrides_applied=tuple(data.get("overridesApplied", [])),
            policy_version=data.get("policyVersion", ""),
        )


def signals_by_type(signals: List[SignalResult]) -> Dict[SignalType, SignalResult]:
    """First result per type wins."""
    out: Dict[SignalType, SignalResult] = {}
    for s in signals:
        out.setdefault(s.signal_type, s)
    return out
