"""
ShopTrust — Signal Collaborators

One async collector per signal. Each takes a normalized URL and returns a
SignalResult, or raises CollectorError. They never fall back to made-up
data; the orchestrator turns a failure into a neutral placeholder.

Sources:
    1. Google Safe Browsing v4  (malware / phishing filter, API key)
    2. RDAP                     (domain registration age, free)
    3. TLS handshake            (certificate validity, direct socket)
    4. IPQualityScore           (automated fraud reputation, API key)
    5. SerpApi → review sites   (Trustpilot, Recensioni Verificate, API key)
    6. Lexical heuristics       (+ optional storefront scan for payment methods)
"""
import asyncio
import dataclasses
import re
import socket
import ssl
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
import structlog

from shoptrust.compute.targets import extract_domain
from shoptrust.config import Settings
from shoptrust.errors import CollectorError, CollectorNotConfigured
from shoptrust.trust.heuristics import analyze_domain
from shoptrust.trust.models import (
    CertificateDetails, DomainAgeDetails, HeuristicsDetails, MalwareDetails,
    ReputationDetails, ReviewsDetails, ReviewSource, SignalResult, SignalStatus,
    SignalType,
)
from shoptrust.trust.weights import WeightingPolicy

logger = structlog.get_logger()

Collector = Callable[[str], Awaitable[SignalResult]]


async def _request_json(
    client: httpx.AsyncClient,
    signal_type: SignalType,
    method: str,
    url: str,
    **kwargs: Any,
) -> Any:
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise CollectorError(signal_type.value, f"request failed: {e}") from e
    if resp.status_code >= 400:
        raise CollectorError(signal_type.value, f"upstream returned {resp.status_code}")
    try:
        return resp.json()
    except ValueError as e:
        raise CollectorError(signal_type.value, "upstream returned invalid JSON") from e


# ── 1. Google Safe Browsing ───────────────────────

SAFE_BROWSING_URL = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
_MALWARE_THREATS = {"MALWARE", "UNWANTED_SOFTWARE"}


async def collect_malware_filter(
    url: str, client: httpx.AsyncClient, settings: Settings, policy: WeightingPolicy,
) -> SignalResult:
    """Filter-only signal: it acts through the malware override, weight 0."""
    signal_type = SignalType.MALWARE_FILTER
    if not settings.GOOGLE_SAFE_BROWSING_KEY:
        raise CollectorNotConfigured(signal_type.value, "GOOGLE_SAFE_BROWSING_KEY not set")

    body = {
        "client": {"clientId": "shoptrust", "clientVersion": "1.0"},
        "threatInfo": {
            "threatTypes": sorted(_MALWARE_THREATS | {"SOCIAL_ENGINEERING"}),
            "platformTypes": ["ANY_PLATFORM"],
            "threatEntryTypes": ["URL"],
            "threatEntries": [{"url": url}],
        },
    }
    data = await _request_json(
        client, signal_type, "POST", SAFE_BROWSING_URL,
        params={"key": settings.GOOGLE_SAFE_BROWSING_KEY}, json=body,
    )

    threats = sorted({m.get("threatType", "") for m in data.get("matches", []) if m.get("threatType")})
    details = MalwareDetails(
        is_malware=any(t in _MALWARE_THREATS for t in threats),
        is_phishing="SOCIAL_ENGINEERING" in threats,
        threats=tuple(threats),
    )
    weight = policy.weight_for(signal_type)
    if details.is_phishing:
        return SignalResult(signal_type, SignalStatus.DANGER, 0, weight, "Site flagged for phishing", details)
    if threats:
        return SignalResult(signal_type, SignalStatus.DANGER, 0, weight, "Site flagged for malware", details)
    return SignalResult(signal_type, SignalStatus.SAFE, 100, weight, "No threats detected", details)


# ── 2. RDAP (domain age) ──────────────────────────

_RDAP_SERVERS = {
    "com": "https://rdap.verisign.com/com/v1/domain/{domain}",
    "net": "https://rdap.verisign.com/net/v1/domain/{domain}",
    "org": "https://rdap.publicinterestregistry.org/rdap/domain/{domain}",
    "it": "https://rdap.nic.it/domain/{domain}",
    "eu": "https://rdap.eu/domain/{domain}",
    "de": "https://rdap.denic.de/domain/{domain}",
    "uk": "https://rdap.nominet.uk/uk/domain/{domain}",
    "fr": "https://rdap.nic.fr/domain/{domain}",
    "nl": "https://rdap.sidn.nl/domain/{domain}",
}
RDAP_FALLBACK = "https://rdap.org/domain/{domain}"


def rdap_urls(domain: str) -> List[str]:
    """TLD-specific server first (more reliable), generic bootstrap last."""
    tld = domain.rsplit(".", 1)[-1].lower()
    urls = []
    if tld in _RDAP_SERVERS:
        urls.append(_RDAP_SERVERS[tld].format(domain=domain))
    urls.append(RDAP_FALLBACK.format(domain=domain))
    return urls


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def parse_rdap(data: Dict[str, Any]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """(creation, expiration, registrar). Registries disagree on event names."""
    creation = expiration = None
    for event in data.get("events", []) or []:
        action = str(event.get("eventAction", "")).lower()
        if action in ("registration", "created", "creation"):
            creation = event.get("eventDate")
        elif action in ("expiration", "expired"):
            expiration = event.get("eventDate")

    registrar = None
    for entity in data.get("entities", []) or []:
        if "registrar" not in (entity.get("roles") or []):
            continue
        public_ids = entity.get("publicIds") or []
        if public_ids and public_ids[0].get("identifier"):
            registrar = str(public_ids[0]["identifier"])
        else:
            vcard = entity.get("vcardArray") or []
            if len(vcard) > 1:
                for prop in vcard[1]:
                    if prop and prop[0] == "fn" and len(prop) > 3:
                        registrar = str(prop[3])
                        break
        break
    return creation, expiration, registrar


def score_domain_age(age_days: int) -> Tuple[int, SignalStatus, str]:
    if age_days < 30:
        return 10, SignalStatus.DANGER, "Domain registered less than a month ago"
    if age_days < 90:
        return 30, SignalStatus.DANGER, "Domain registered less than 3 months ago"
    if age_days < 180:
        return 50, SignalStatus.WARNING, "Domain registered less than 6 months ago"
    if age_days < 365:
        return 70, SignalStatus.WARNING, "Domain active for less than a year"
    if age_days < 730:
        return 85, SignalStatus.SAFE, "Domain active for more than a year"
    return 100, SignalStatus.SAFE, f"Domain active for {age_days // 365} years"


async def collect_domain_age(
    url: str, client: httpx.AsyncClient, settings: Settings, policy: WeightingPolicy,
) -> SignalResult:
    signal_type = SignalType.DOMAIN_AGE
    domain = extract_domain(url)

    data = None
    last_error = ""
    for rdap_url in rdap_urls(domain):
        try:
            data = await _request_json(
                client, signal_type, "GET", rdap_url,
                headers={"Accept": "application/rdap+json"},
            )
            logger.debug("rdap_success", domain=domain, source=rdap_url)
            break
        except CollectorError as e:
            last_error = str(e)
            logger.debug("rdap_source_failed", domain=domain, source=rdap_url, error=last_error)
    if data is None:
        raise CollectorError(signal_type.value, f"all RDAP sources failed; last: {last_error}")

    creation, expiration, registrar = parse_rdap(data)
    weight = policy.weight_for(signal_type)
    created = _parse_date(creation)
    expires = _parse_date(expiration)
    if created is None:
        return SignalResult(
            signal_type, SignalStatus.WARNING, 50, weight,
            "Domain creation date not available",
            DomainAgeDetails(
                registrar=registrar,
                expiration_date=expires.date().isoformat() if expires else None,
            ),
        )

    age_days = max((datetime.now(timezone.utc) - created).days, 0)
    score, status, message = score_domain_age(age_days)
    return SignalResult(
        signal_type, status, score, weight, message,
        DomainAgeDetails(
            age_days=age_days,
            registrar=registrar,
            creation_date=created.date().isoformat(),
            expiration_date=expires.date().isoformat() if expires else None,
        ),
    )


# ── 3. TLS certificate ────────────────────────────

def _fetch_certificate(domain: str, timeout: float) -> CertificateDetails:
    """Blocking handshake; run in a worker thread."""
    ctx = ssl.create_default_context()
    try:
        with socket.create_connection((domain, 443), timeout=timeout) as sock:
            with ctx.wrap_socket(sock, server_hostname=domain) as ssock:
                cert = ssock.getpeercert() or {}
                protocol = ssock.version()
    except ssl.SSLCertVerificationError as e:
        logger.debug("certificate_not_trusted", domain=domain, reason=e.verify_message)
        return CertificateDetails(is_valid=False, subject=domain)
    except (OSError, ssl.SSLError) as e:
        raise CollectorError(SignalType.CERTIFICATE.value, f"TLS handshake failed: {e}") from e

    issuer = dict(x[0] for x in cert.get("issuer", ()))
    subject = dict(x[0] for x in cert.get("subject", ()))
    not_after = cert.get("notAfter")
    expires_at = days_left = None
    if not_after:
        expiry = datetime.fromtimestamp(ssl.cert_time_to_seconds(not_after), tz=timezone.utc)
        expires_at = expiry.date().isoformat()
        days_left = (expiry - datetime.now(timezone.utc)).days
    return CertificateDetails(
        is_valid=True,
        issuer=issuer.get("organizationName") or issuer.get("commonName"),
        subject=subject.get("commonName", domain),
        expires_at=expires_at,
        days_until_expiry=days_left,
        protocol=protocol,
    )


def score_certificate(details: CertificateDetails) -> Tuple[int, SignalStatus, str]:
    days = details.days_until_expiry
    if not details.is_valid:
        return 0, SignalStatus.DANGER, "Invalid or expired SSL certificate"
    if days is not None and days < 0:
        return 0, SignalStatus.DANGER, "SSL certificate expired"
    if days is not None and days < 7:
        return 30, SignalStatus.DANGER, f"SSL certificate expires in {days} days"
    if days is not None and days < 30:
        return 60, SignalStatus.WARNING, f"SSL certificate expires in {days} days"
    if days is not None and days < 90:
        return 80, SignalStatus.SAFE, "Valid SSL certificate"
    return 100, SignalStatus.SAFE, "Valid and secure SSL certificate"


async def collect_certificate(
    url: str, client: httpx.AsyncClient, settings: Settings, policy: WeightingPolicy,
) -> SignalResult:
    domain = extract_domain(url)
    details = await asyncio.to_thread(_fetch_certificate, domain, settings.HTTP_TIMEOUT_SECONDS)
    score, status, message = score_certificate(details)
    signal_type = SignalType.CERTIFICATE
    return SignalResult(signal_type, status, score, policy.weight_for(signal_type), message, details)


# ── 4. IPQualityScore ─────────────────────────────

IPQS_URL = "https://ipqualityscore.com/api/json/url/{key}/{target}"


def score_reputation(details: ReputationDetails) -> Tuple[int, SignalStatus, str]:
    score = 100 - details.risk_score
    if details.is_phishing or details.is_malware or details.risk_score >= 85:
        return score, SignalStatus.DANGER, "High fraud risk reported"
    if details.is_suspicious or details.risk_score >= 60:
        return score, SignalStatus.WARNING, "Moderate fraud risk reported"
    return score, SignalStatus.SAFE, "No significant fraud risk"


async def collect_reputation(
    url: str, client: httpx.AsyncClient, settings: Settings, policy: WeightingPolicy,
) -> SignalResult:
    signal_type = SignalType.REPUTATION
    if not settings.IPQS_API_KEY:
        raise CollectorNotConfigured(signal_type.value, "IPQS_API_KEY not set")

    data = await _request_json(
        client, signal_type, "GET",
        IPQS_URL.format(key=settings.IPQS_API_KEY, target=quote(url, safe="")),
        params={"strictness": 0},
    )
    if not data.get("success", False):
        raise CollectorError(signal_type.value, str(data.get("message", "request rejected"))[:200])

    details = ReputationDetails(
        risk_score=int(min(max(data.get("risk_score", 0), 0), 100)),
        is_phishing=bool(data.get("phishing")),
        is_malware=bool(data.get("malware")),
        is_suspicious=bool(data.get("suspicious")),
        is_parking=bool(data.get("parking")),
        is_spamming=bool(data.get("spamming")),
    )
    score, status, message = score_reputation(details)
    return SignalResult(signal_type, status, score, policy.weight_for(signal_type), message, details)


# ── 5. Reviews (multi-source) ─────────────────────

SERPAPI_URL = "https://serpapi.com/search.json"
MIN_REVIEWS_THRESHOLD = 20

# Order matters: first result per site wins.
REVIEW_SITES = (
    {"name": "Trustpilot", "pattern": re.compile(r"trustpilot\.com/review/"), "query": "site:trustpilot.com"},
    {"name": "Recensioni Verificate", "pattern": re.compile(r"recensioni-verificate\.com"),
     "query": "site:recensioni-verificate.com"},
)

_RATING_IN_EXT = re.compile(r"(\d+[.,]?\d*)\s*(/\s*5|stars?|stelle)?", re.IGNORECASE)
_COUNT_IN_TEXT = re.compile(r"(\d+[\d,.]*k?)\s*(review|recens)", re.IGNORECASE)
_RATING_IN_SNIPPET = re.compile(r"(\d+[.,]?\d*)\s*/\s*5")


def parse_review_count(text: str) -> int:
    """'1,234' → 1234, '1.2k' → 1200, 'n/a' → 0"""
    cleaned = text.lower().replace("reviews", "").replace("recensioni", "").strip()
    if "k" in cleaned:
        try:
            return round(float(cleaned.replace("k", "").replace(",", ".")) * 1000)
        except ValueError:
            return 0
    digits = re.sub(r"[,.]", "", cleaned)
    return int(digits) if digits.isdigit() else 0


def format_review_count(count: int) -> str:
    if count >= 10000:
        return f"{round(count / 1000)}k"
    if count >= 1000:
        return f"{count / 1000:.1f}k".replace(".0k", "k")
    return str(count)


def extract_rating(result: Dict[str, Any]) -> Tuple[Optional[float], int]:
    """Rating and review count from a search hit: rich snippet, extensions, then text."""
    rating: Optional[float] = None
    total = 0
    top = (result.get("rich_snippet") or {}).get("top") or {}

    detected = top.get("detected_extensions") or {}
    if detected:
        r = detected.get("rating")
        if isinstance(r, (int, float)) and 1 <= r <= 5:
            rating = float(r)
        if detected.get("reviews"):
            total = int(detected["reviews"])

    if rating is None:
        for ext in top.get("extensions") or []:
            lowered = ext.lower()
            m = _RATING_IN_EXT.search(ext)
            if m and "review" not in lowered and "recens" not in lowered:
                parsed = float(m.group(1).replace(",", "."))
                if 1 <= parsed <= 5:
                    rating = parsed
            c = _COUNT_IN_TEXT.search(ext)
            if c:
                total = parse_review_count(c.group(1))

    snippet = result.get("snippet") or ""
    if rating is None and snippet:
        m = _RATING_IN_SNIPPET.search(snippet)
        if m:
            rating = float(m.group(1).replace(",", "."))
    if total == 0 and snippet:
        c = _COUNT_IN_TEXT.search(snippet)
        if c:
            total = parse_review_count(c.group(1))

    return rating, total


def extract_sources(data: Dict[str, Any]) -> List[ReviewSource]:
    sources: List[ReviewSource] = []
    seen = set()
    for result in data.get("organic_results") or []:
        link = result.get("link")
        if not link:
            continue
        site = next((s for s in REVIEW_SITES if s["pattern"].search(link)), None)
        if site is None or site["name"] in seen:
            continue
        seen.add(site["name"])
        rating, total = extract_rating(result)
        sources.append(ReviewSource(name=site["name"], rating=rating, total_reviews=total, url=link))
    return sources


def aggregate_reviews(sources: List[ReviewSource]) -> Tuple[Optional[float], int, int]:
    """(rating, total_reviews, source_count). Weighted by review volume."""
    valid = [s for s in sources if s.rating is not None and s.total_reviews > 0]
    if not valid:
        rated = [s for s in sources if s.rating is not None]
        if rated:
            avg = sum(s.rating for s in rated) / len(rated)
            return round(avg, 1), 0, len(rated)
        return None, 0, 0

    total = sum(s.total_reviews for s in valid)
    weighted = sum(s.rating * s.total_reviews for s in valid)
    return round(weighted / total, 1), total, len(valid)


def score_reviews(rating: Optional[float], total: int, source_count: int) -> Tuple[int, SignalStatus, str]:
    if rating is None or total < MIN_REVIEWS_THRESHOLD:
        return 50, SignalStatus.WARNING, "Not enough reviews"

    origin = f" from {source_count} sources" if source_count > 1 else ""
    info = f" ({format_review_count(total)} reviews{origin})"
    if rating >= 4.5:
        return 100, SignalStatus.SAFE, f"Excellent: {rating}/5{info}"
    if rating >= 4.0:
        return 90, SignalStatus.SAFE, f"Very good: {rating}/5{info}"
    if rating >= 3.5:
        return 75, SignalStatus.SAFE, f"Good: {rating}/5{info}"
    if rating >= 3.0:
        return 60, SignalStatus.WARNING, f"Average: {rating}/5{info}"
    if rating >= 2.0:
        return 35, SignalStatus.WARNING, f"Low rating: {rating}/5{info}"
    return 15, SignalStatus.DANGER, f"Very poor rating: {rating}/5{info}"


async def collect_reviews(
    url: str, client: httpx.AsyncClient, settings: Settings, policy: WeightingPolicy,
) -> SignalResult:
    """One combined OR query covers every review site."""
    signal_type = SignalType.REVIEWS
    if not settings.SERP_API_KEY:
        raise CollectorNotConfigured(signal_type.value, "SERP_API_KEY not set")

    domain = extract_domain(url)
    sites = " OR ".join(s["query"] for s in REVIEW_SITES)
    data = await _request_json(
        client, signal_type, "GET", SERPAPI_URL,
        params={
            "engine": "google",
            "q": f'"{domain}" ({sites})',
            "api_key": settings.SERP_API_KEY,
            "num": 15,
            "hl": "it",
            "gl": "it",
        },
    )
    if data.get("error"):
        raise CollectorError(signal_type.value, str(data["error"])[:200])

    sources = extract_sources(data)
    rating, total, source_count = aggregate_reviews(sources)
    score, status, message = score_reviews(rating, total, source_count)
    details = ReviewsDetails(
        aggregated_rating=rating,
        total_reviews=total,
        source_count=source_count,
        sources=tuple(s for s in sources if s.rating is not None or s.url),
        insufficient_reviews=rating is None or total < MIN_REVIEWS_THRESHOLD,
    )
    return SignalResult(signal_type, status, score, policy.weight_for(signal_type, total), message, details)


# ── 6. Heuristics (+ storefront scan) ─────────────

PAYMENT_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("card", re.compile(r"\b(visa|mastercard|maestro|american express|amex|credit card|carta di credito)\b")),
    ("paypal", re.compile(r"paypal")),
    ("bank_transfer", re.compile(r"\b(bank transfer|wire transfer|bonifico|iban)\b")),
    ("cash_on_delivery", re.compile(r"\b(cash on delivery|contrassegno)\b")),
    ("wallet", re.compile(r"\b(apple ?pay|google ?pay|klarna|scalapay|satispay)\b")),
    ("crypto", re.compile(r"\b(bitcoin|btc|ethereum|usdt|tether|litecoin|cryptocurrenc(y|ies)|criptovalut[ae])\b")),
)
_MAX_PAGE_CHARS = 500_000


def detect_payment_methods(html: str) -> Tuple[str, ...]:
    text = (html or "")[:_MAX_PAGE_CHARS].lower()
    return tuple(name for name, pattern in PAYMENT_PATTERNS if pattern.search(text))


def with_payment_methods(result: SignalResult, methods: Tuple[str, ...]) -> SignalResult:
    """Fold storefront findings into a lexical heuristics result."""
    details = result.details
    if not isinstance(details, HeuristicsDetails):
        return result
    crypto_only = methods == ("crypto",)
    status, message = result.status, result.message
    if crypto_only:
        message = "Only cryptocurrency payments accepted"
        if status != SignalStatus.DANGER:
            status = SignalStatus.WARNING
    return SignalResult(
        signal_type=result.signal_type,
        status=status,
        score=result.score,
        weight=result.weight,
        message=message,
        details=HeuristicsDetails(
            label=details.label,
            tld=details.tld,
            total_penalty=details.total_penalty,
            checks=details.checks,
            payment_methods=methods,
            crypto_only_payments=crypto_only,
        ),
    )


async def collect_heuristics(
    url: str, client: httpx.AsyncClient, settings: Settings, policy: WeightingPolicy,
) -> SignalResult:
    result = analyze_domain(extract_domain(url), weight=policy.weight_for(SignalType.HEURISTICS))
    if not settings.STOREFRONT_SCAN_ENABLED:
        return result
    try:
        resp = await client.get(url)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        # The lexical verdict stands on its own; the flag keeps it short-lived in cache.
        logger.debug("storefront_scan_failed", url=url, error=str(e))
        return dataclasses.replace(
            result, details=dataclasses.replace(result.details, storefront_scan_failed=True),
        )
    return with_payment_methods(result, detect_payment_methods(resp.text))


# ── Registry ──────────────────────────────────────

def build_collectors(
    client: httpx.AsyncClient, settings: Settings, policy: WeightingPolicy,
) -> Dict[SignalType, Collector]:
    return {
        SignalType.MALWARE_FILTER: partial(collect_malware_filter, client=client, settings=settings, policy=policy),
        SignalType.DOMAIN_AGE: partial(collect_domain_age, client=client, settings=settings, policy=policy),
        SignalType.CERTIFICATE: partial(collect_certificate, client=client, settings=settings, policy=policy),
        SignalType.REPUTATION: partial(collect_reputation, client=client, settings=settings, policy=policy),
        SignalType.REVIEWS: partial(collect_reviews, client=client, settings=settings, policy=policy),
        SignalType.HEURISTICS: partial(collect_heuristics, client=client, settings=settings, policy=policy),
    }
