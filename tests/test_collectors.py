"""
Signal collectors against canned provider responses (httpx.MockTransport).
"""
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from shoptrust.compute import collectors
from shoptrust.compute.collectors import (
    aggregate_reviews, build_collectors, collect_certificate, collect_domain_age,
    collect_heuristics, collect_malware_filter, collect_reputation, collect_reviews,
    detect_payment_methods, parse_rdap, parse_review_count, rdap_urls,
    score_certificate, score_domain_age,
)
from shoptrust.errors import CollectorError, CollectorNotConfigured
from shoptrust.trust.models import (
    CertificateDetails, ReviewSource, SignalStatus, SignalType,
)
from shoptrust.trust.weights import DEFAULT_POLICY

URL = "https://www.shop.com"


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Safe Browsing ─────────────────────────────────

@pytest.mark.asyncio
async def test_safe_browsing_phishing_match(settings):
    seen = {}

    def handler(request):
        seen["key"] = request.url.params["key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"matches": [{"threatType": "SOCIAL_ENGINEERING"}]})

    async with client_for(handler) as client:
        result = await collect_malware_filter(URL, client, settings, DEFAULT_POLICY)

    assert seen["key"] == "gsb-test"
    assert seen["body"]["threatInfo"]["threatEntries"] == [{"url": URL}]
    assert result.status == SignalStatus.DANGER
    assert result.score == 0
    assert result.weight == 0
    assert result.details.is_phishing is True
    assert result.details.is_malware is False


@pytest.mark.asyncio
async def test_safe_browsing_clean(settings):
    async with client_for(lambda r: httpx.Response(200, json={})) as client:
        result = await collect_malware_filter(URL, client, settings, DEFAULT_POLICY)
    assert result.status == SignalStatus.SAFE
    assert result.score == 100
    assert result.details.threats == ()


@pytest.mark.asyncio
async def test_safe_browsing_without_key(settings):
    settings.GOOGLE_SAFE_BROWSING_KEY = ""
    async with client_for(lambda r: httpx.Response(200, json={})) as client:
        with pytest.raises(CollectorNotConfigured):
            await collect_malware_filter(URL, client, settings, DEFAULT_POLICY)


@pytest.mark.asyncio
async def test_upstream_error_raises_collector_error(settings):
    async with client_for(lambda r: httpx.Response(500, text="oops")) as client:
        with pytest.raises(CollectorError):
            await collect_malware_filter(URL, client, settings, DEFAULT_POLICY)


# ── RDAP ──────────────────────────────────────────

RDAP_DOC = {
    "events": [
        {"eventAction": "registration", "eventDate": "2015-03-01T10:00:00Z"},
        {"eventAction": "expiration", "eventDate": "2030-03-01T10:00:00Z"},
    ],
    "entities": [
        {"roles": ["registrar"], "vcardArray": ["vcard", [["version", {}, "text", "4.0"],
                                                          ["fn", {}, "text", "Example Registrar"]]]},
    ],
}


def test_rdap_prefers_tld_server():
    assert rdap_urls("shop.it") == ["https://rdap.nic.it/domain/shop.it", "https://rdap.org/domain/shop.it"]
    assert rdap_urls("shop.shop") == ["https://rdap.org/domain/shop.shop"]


def test_parse_rdap_reads_events_and_registrar():
    creation, expiration, registrar = parse_rdap(RDAP_DOC)
    assert creation == "2015-03-01T10:00:00Z"
    assert expiration == "2030-03-01T10:00:00Z"
    assert registrar == "Example Registrar"


@pytest.mark.asyncio
async def test_domain_age_falls_back_to_bootstrap(settings):
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        if request.url.host == "rdap.verisign.com":
            return httpx.Response(404)
        return httpx.Response(200, json=RDAP_DOC)

    async with client_for(handler) as client:
        result = await collect_domain_age(URL, client, settings, DEFAULT_POLICY)

    assert hosts == ["rdap.verisign.com", "rdap.org"]
    assert result.status == SignalStatus.SAFE
    assert result.score == 100
    assert result.details.creation_date == "2015-03-01"
    assert result.details.registrar == "Example Registrar"


@pytest.mark.asyncio
async def test_young_domain(settings):
    created = (datetime.now(timezone.utc) - timedelta(days=10)).strftime("%Y-%m-%dT%H:%M:%SZ")
    doc = {"events": [{"eventAction": "registration", "eventDate": created}]}
    async with client_for(lambda r: httpx.Response(200, json=doc)) as client:
        result = await collect_domain_age(URL, client, settings, DEFAULT_POLICY)
    assert result.details.age_days == 10
    assert result.status == SignalStatus.DANGER
    assert result.score == 10


@pytest.mark.asyncio
async def test_missing_creation_date_is_warning(settings):
    async with client_for(lambda r: httpx.Response(200, json={"events": []})) as client:
        result = await collect_domain_age(URL, client, settings, DEFAULT_POLICY)
    assert result.status == SignalStatus.WARNING
    assert result.score == 50
    assert result.details.age_days is None


@pytest.mark.asyncio
async def test_all_rdap_sources_down(settings):
    async with client_for(lambda r: httpx.Response(503)) as client:
        with pytest.raises(CollectorError):
            await collect_domain_age(URL, client, settings, DEFAULT_POLICY)


@pytest.mark.parametrize("days,score,status", [
    (0, 10, SignalStatus.DANGER), (29, 10, SignalStatus.DANGER),
    (30, 30, SignalStatus.DANGER), (90, 50, SignalStatus.WARNING),
    (180, 70, SignalStatus.WARNING), (365, 85, SignalStatus.SAFE),
    (730, 100, SignalStatus.SAFE),
])
def test_domain_age_rubric(days, score, status):
    assert score_domain_age(days)[:2] == (score, status)


# ── Certificate ───────────────────────────────────

@pytest.mark.parametrize("details,score,status", [
    (CertificateDetails(is_valid=False), 0, SignalStatus.DANGER),
    (CertificateDetails(is_valid=True, days_until_expiry=-1), 0, SignalStatus.DANGER),
    (CertificateDetails(is_valid=True, days_until_expiry=3), 30, SignalStatus.DANGER),
    (CertificateDetails(is_valid=True, days_until_expiry=20), 60, SignalStatus.WARNING),
    (CertificateDetails(is_valid=True, days_until_expiry=60), 80, SignalStatus.SAFE),
    (CertificateDetails(is_valid=True, days_until_expiry=300), 100, SignalStatus.SAFE),
])
def test_certificate_rubric(details, score, status):
    assert score_certificate(details)[:2] == (score, status)


@pytest.mark.asyncio
async def test_collect_certificate_runs_handshake_off_loop(settings, monkeypatch):
    calls = []

    def fake_fetch(domain, timeout):
        calls.append(domain)
        return CertificateDetails(is_valid=True, issuer="Let's Encrypt", subject=domain, days_until_expiry=45)

    monkeypatch.setattr(collectors, "_fetch_certificate", fake_fetch)
    result = await collect_certificate(URL, None, settings, DEFAULT_POLICY)
    assert calls == ["shop.com"]
    assert result.signal_type == SignalType.CERTIFICATE
    assert result.score == 80
    assert result.weight == 15


# ── IPQualityScore ────────────────────────────────

@pytest.mark.asyncio
async def test_reputation_high_risk(settings):
    def handler(request):
        assert "ipqs-test" in request.url.path
        return httpx.Response(200, json={"success": True, "risk_score": 90, "suspicious": True})

    async with client_for(handler) as client:
        result = await collect_reputation(URL, client, settings, DEFAULT_POLICY)
    assert result.score == 10
    assert result.status == SignalStatus.DANGER
    assert result.details.is_suspicious is True


@pytest.mark.asyncio
async def test_reputation_moderate_and_low(settings):
    async with client_for(lambda r: httpx.Response(200, json={"success": True, "risk_score": 65})) as client:
        moderate = await collect_reputation(URL, client, settings, DEFAULT_POLICY)
    async with client_for(lambda r: httpx.Response(200, json={"success": True, "risk_score": 10})) as client:
        low = await collect_reputation(URL, client, settings, DEFAULT_POLICY)
    assert (moderate.score, moderate.status) == (35, SignalStatus.WARNING)
    assert (low.score, low.status) == (90, SignalStatus.SAFE)


@pytest.mark.asyncio
async def test_reputation_rejected_request(settings):
    body = {"success": False, "message": "Invalid key"}
    async with client_for(lambda r: httpx.Response(200, json=body)) as client:
        with pytest.raises(CollectorError):
            await collect_reputation(URL, client, settings, DEFAULT_POLICY)


# ── Reviews ───────────────────────────────────────

SERP_DOC = {
    "organic_results": [
        {
            "link": "https://it.trustpilot.com/review/shop.com",
            "rich_snippet": {"top": {"detected_extensions": {"rating": 4.6, "reviews": 1200}}},
        },
        {
            "link": "https://www.trustpilot.com/review/shop.com?page=2",
            "rich_snippet": {"top": {"detected_extensions": {"rating": 1.0, "reviews": 9000}}},
        },
        {
            "link": "https://www.recensioni-verificate.com/shop.com",
            "snippet": "Valutazione 4,2/5 basata su 300 recensioni dei clienti",
        },
        {"link": "https://blog.example.com/shop-com-review", "snippet": "5/5"},
    ],
}


@pytest.mark.asyncio
async def test_reviews_weighted_across_sources(settings):
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json=SERP_DOC)

    async with client_for(handler) as client:
        result = await collect_reviews(URL, client, settings, DEFAULT_POLICY)

    assert '"shop.com"' in seen["q"]
    assert "site:trustpilot.com OR site:recensioni-verificate.com" in seen["q"]
    assert seen["hl"] == "it"
    details = result.details
    assert details.total_reviews == 1500
    assert details.source_count == 2
    assert details.aggregated_rating == 4.5
    assert details.insufficient_reviews is False
    assert result.score == 100
    assert result.status == SignalStatus.SAFE
    assert result.weight == 30


@pytest.mark.asyncio
async def test_too_few_reviews(settings):
    doc = {"organic_results": [{
        "link": "https://www.trustpilot.com/review/shop.com",
        "rich_snippet": {"top": {"extensions": ["4.8/5", "5 reviews"]}},
    }]}
    async with client_for(lambda r: httpx.Response(200, json=doc)) as client:
        result = await collect_reviews(URL, client, settings, DEFAULT_POLICY)
    assert result.status == SignalStatus.WARNING
    assert result.score == 50
    assert result.details.total_reviews == 5
    assert result.details.insufficient_reviews is True


@pytest.mark.asyncio
async def test_reviews_provider_error(settings):
    async with client_for(lambda r: httpx.Response(200, json={"error": "quota exhausted"})) as client:
        with pytest.raises(CollectorError):
            await collect_reviews(URL, client, settings, DEFAULT_POLICY)


@pytest.mark.parametrize("text,expected", [
    ("1,234", 1234), ("1.2k", 1200), ("850 reviews", 850), ("n/a", 0),
])
def test_parse_review_count(text, expected):
    assert parse_review_count(text) == expected


def test_aggregate_without_counts_is_plain_average():
    sources = [ReviewSource("A", rating=4.0), ReviewSource("B", rating=3.0)]
    assert aggregate_reviews(sources) == (3.5, 0, 2)


def test_aggregate_with_nothing():
    assert aggregate_reviews([]) == (None, 0, 0)


# ── Heuristics & storefront ───────────────────────

def test_detect_payment_methods():
    html = "<footer>We accept Visa, Mastercard and PayPal. Contrassegno disponibile.</footer>"
    assert detect_payment_methods(html) == ("card", "paypal", "cash_on_delivery")
    assert detect_payment_methods("<p>Pay with Bitcoin or USDT only</p>") == ("crypto",)
    assert detect_payment_methods("") == ()


@pytest.mark.asyncio
async def test_heuristics_storefront_crypto_only(settings):
    settings.STOREFRONT_SCAN_ENABLED = True
    html = "<html><body>Payments: Bitcoin, Ethereum</body></html>"
    async with client_for(lambda r: httpx.Response(200, text=html)) as client:
        result = await collect_heuristics(URL, client, settings, DEFAULT_POLICY)
    assert result.details.crypto_only_payments is True
    assert result.details.payment_methods == ("crypto",)
    assert result.status == SignalStatus.WARNING


@pytest.mark.asyncio
async def test_heuristics_storefront_failure_keeps_lexical(settings):
    settings.STOREFRONT_SCAN_ENABLED = True
    async with client_for(lambda r: httpx.Response(502)) as client:
        result = await collect_heuristics(URL, client, settings, DEFAULT_POLICY)
    assert result.details.label == "shop"
    assert result.details.payment_methods == ()
    assert result.details.crypto_only_payments is False
    assert result.details.storefront_scan_failed is True


@pytest.mark.asyncio
async def test_heuristics_without_scan_makes_no_request(settings):
    def handler(request):
        raise AssertionError("no request expected")

    async with client_for(handler) as client:
        result = await collect_heuristics(URL, client, settings, DEFAULT_POLICY)
    assert result.signal_type == SignalType.HEURISTICS


@pytest.mark.asyncio
async def test_build_collectors_covers_every_signal(settings):
    async with client_for(lambda r: httpx.Response(200, json={})) as client:
        registry = build_collectors(client, settings, DEFAULT_POLICY)
        assert set(registry) == set(SignalType)
        result = await registry[SignalType.MALWARE_FILTER](URL)
    assert result.status == SignalStatus.SAFE
