"""
ShopTrust — Lexical Fraud Heuristics

Reads nothing but the domain string. No network, no clock, no randomness:
the same domain always yields the same SignalResult.

Five sub-checks each report (penalty, message, severity). Penalties are
summed (bonuses are negative) and subtracted from 100:

    1. Typosquatting       look-alike / near-miss / decoy-suffix of a brand
    2. Suspicious TLD      high-abuse extension +25, established extension -5
    3. Domain length       > 20 chars +10, > 30 chars +20
    4. Suspicious patterns hyphens, digits, consonant runs, scam keywords (cap 40)
    5. Known brand         the label IS a recognized brand -20
"""
from __future__ import annotations

import re
import unicodedata
from typing import List, Optional, Tuple

import Levenshtein

from shoptrust.compute.targets import extract_domain
from shoptrust.trust.models import (
    HeuristicCheck, HeuristicsDetails, Severity, SignalResult, SignalStatus,
    SignalType, clamp_score,
)
from shoptrust.trust.weights import DEFAULT_POLICY


KNOWN_BRANDS: Tuple[str, ...] = (
    "amazon", "ebay", "paypal", "apple", "google", "microsoft", "netflix",
    "facebook", "instagram", "zalando", "aliexpress", "walmart", "adidas",
    "samsung", "spotify", "decathlon", "mediaworld", "unieuro", "shein",
    "bestbuy", "costco", "vinted",
)

DECOY_SUFFIXES: Tuple[str, ...] = (
    "-shop", "-store", "-official", "-outlet", "-sale", "-deals", "-online",
    "-italia", "-support", "-login", "-secure",
    "shop", "store", "official", "outlet", "online",
)

SUSPICIOUS_TLDS = frozenset({
    "tk", "ml", "ga", "cf", "gq", "xyz", "top", "icu", "buzz", "click",
    "link", "loan", "win", "bid", "rest", "monster", "cyou", "sbs", "cfd",
    "work", "country", "stream", "download", "racing", "review", "party",
})

TRUSTED_TLDS = frozenset({
    "com", "it", "eu", "net", "org", "de", "fr", "es", "uk", "nl", "ch",
    "at", "be", "gov", "edu",
})

SCAM_KEYWORDS: Tuple[str, ...] = (
    "cheap", "discount", "clearance", "replica", "wholesale", "factory",
    "outlet", "bargain", "giveaway", "winner", "bonus", "promo", "free",
    "sale", "deal", "offer", "luxury", "saldi", "sconti", "gratis",
)

# Second-level registries where the registrable label sits one level deeper.
MULTI_PART_SUFFIXES = frozenset({
    "co.uk", "org.uk", "ac.uk", "com.au", "net.au", "co.jp", "co.nz",
    "com.br", "co.za", "com.mx", "co.in", "com.sg", "co.kr", "com.tw",
    "co.th", "com.tr", "com.cn",
})

_LOOKALIKES = str.maketrans({
    "0": "o", "1": "l", "3": "e", "4": "a", "5": "s", "7": "t", "8": "b",
    "@": "a", "$": "s", "!": "i", "|": "l",
})

_CONSONANT_RUN = re.compile(r"[bcdfghjklmnpqrstvwxz]{5,}")
_STRIP_HYPHENS_DIGITS = re.compile(r"[-\d]")

NEUTRAL_MESSAGE = "No suspicious pattern in the domain name"


# ── Label handling ────────────────────────────────

def split_domain(domain: str) -> Tuple[str, str]:
    """
    Return (registrable label, tld). A host without dots is a single
    literal label with no TLD.
    """
    host = extract_domain(domain)
    parts = [p for p in host.split(".") if p]
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    if len(parts) >= 3 and ".".join(parts[-2:]) in MULTI_PART_SUFFIXES:
        return parts[-3], parts[-1]
    return parts[-2], parts[-1]


def _fold(label: str) -> str:
    decomposed = unicodedata.normalize("NFKD", label.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def swap_lookalikes(label: str) -> str:
    return _fold(label).translate(_LOOKALIKES)


def normalize_label(label: str) -> str:
    """amaz0n-shop → amazonshop"""
    return _STRIP_HYPHENS_DIGITS.sub("", swap_lookalikes(label))


# ── Sub-checks ────────────────────────────────────

def check_typosquatting(label: str) -> HeuristicCheck:
    literal = label.lower()
    name = "typosquatting"
    if not literal or literal in KNOWN_BRANDS:
        return HeuristicCheck(name, 0, "No brand impersonation detected")

    swapped = swap_lookalikes(literal)
    normalized = normalize_label(literal)
    distances = {b: Levenshtein.distance(normalized, b) for b in KNOWN_BRANDS} if normalized else {}

    # Strongest rule first; within a rule, brand order decides.
    for brand in KNOWN_BRANDS:
        if normalized == brand:
            return HeuristicCheck(name, 50, f"Possible typosquatting of {brand}", Severity.DANGER)
    if len(normalized) >= 4:
        for brand in KNOWN_BRANDS:
            if distances[brand] == 1:
                return HeuristicCheck(name, 40, f"Possible typosquatting of {brand}", Severity.DANGER)
    if len(normalized) >= 6:
        for brand in KNOWN_BRANDS:
            if distances[brand] == 2:
                return HeuristicCheck(name, 25, f"Possible typosquatting of {brand}", Severity.WARNING)
    for brand in KNOWN_BRANDS:
        for suffix in DECOY_SUFFIXES:
            if f"{brand}{suffix}" in swapped:
                return HeuristicCheck(
                    name, 30, f"Brand name {brand} used with decoy suffix '{suffix}'", Severity.WARNING,
                )

    return HeuristicCheck(name, 0, "No brand impersonation detected")


def check_tld(tld: str) -> HeuristicCheck:
    name = "tld"
    if tld in SUSPICIOUS_TLDS:
        return HeuristicCheck(name, 25, f"High-risk domain extension .{tld}", Severity.WARNING)
    if tld in TRUSTED_TLDS:
        return HeuristicCheck(name, -5, f"Established domain extension .{tld}")
    if not tld:
        return HeuristicCheck(name, 0, "No domain extension")
    return HeuristicCheck(name, 0, f"Domain extension .{tld}")


def check_length(label: str) -> HeuristicCheck:
    n = len(label)
    if n > 30:
        return HeuristicCheck("length", 20, f"Unusually long domain name ({n} characters)", Severity.WARNING)
    if n > 20:
        return HeuristicCheck("length", 10, f"Long domain name ({n} characters)")
    return HeuristicCheck("length", 0, "Normal domain length")


def check_patterns(label: str) -> HeuristicCheck:
    literal = label.lower()
    penalty = 0
    issues: List[str] = []

    hyphens = literal.count("-")
    if hyphens >= 3:
        penalty += 20
        issues.append(f"{hyphens} hyphens")
    elif hyphens >= 2:
        penalty += 10
        issues.append(f"{hyphens} hyphens")

    if literal:
        digits = sum(1 for c in literal if c.isdigit())
        if digits / len(literal) > 0.3:
            penalty += 15
            issues.append("many digits")

    run = _CONSONANT_RUN.search(literal)
    if run:
        penalty += 15
        issues.append(f"unpronounceable sequence '{run.group()}'")

    keyword: Optional[str] = next((k for k in SCAM_KEYWORDS if k in literal), None)
    if keyword:
        penalty += 10
        issues.append(f"keyword '{keyword}'")

    penalty = min(penalty, 40)
    if not issues:
        return HeuristicCheck("patterns", 0, "No unusual patterns")
    severity = Severity.WARNING if penalty >= 20 else Severity.INFO
    return HeuristicCheck("patterns", penalty, "Suspicious patterns: " + ", ".join(issues), severity)


def check_known_brand(label: str) -> HeuristicCheck:
    if label.lower() in KNOWN_BRANDS:
        return HeuristicCheck("known_brand", -20, "Recognized brand domain")
    return HeuristicCheck("known_brand", 0, "Not a recognized brand")


# ── Entry point ───────────────────────────────────

def analyze_domain(domain: str, weight: Optional[int] = None) -> SignalResult:
    """Lexical fraud-risk signal for a domain (or URL). Never raises."""
    label, tld = split_domain(domain)
    checks = (
        check_typosquatting(label),
        check_tld(tld),
        check_length(label),
        check_patterns(label),
        check_known_brand(label),
    )
    total = sum(c.penalty for c in checks)

    dangers = [c for c in checks if c.severity == Severity.DANGER]
    warnings = [c for c in checks if c.severity == Severity.WARNING]
    if dangers:
        status, message = SignalStatus.DANGER, dangers[0].message
    elif warnings:
        status, message = SignalStatus.WARNING, warnings[0].message
    else:
        status, message = SignalStatus.SAFE, NEUTRAL_MESSAGE

    return SignalResult(
        signal_type=SignalType.HEURISTICS,
        status=status,
        score=clamp_score(100 - total),
        weight=DEFAULT_POLICY.weight_for(SignalType.HEURISTICS) if weight is None else weight,
        message=message,
        details=HeuristicsDetails(label=label, tld=tld, total_penalty=total, checks=checks),
    )
