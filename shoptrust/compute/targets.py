"""
ShopTrust — Target Normalization

Turns whatever the user typed into (normalized URL, bare domain).
Never raises: input that does not parse as a URL is treated as a literal
hostname candidate, so every input produces *some* verdict.
"""
import re
from urllib.parse import urlsplit

_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_SCHEME_WWW = re.compile(r"^([a-z][a-z0-9+.-]*://)?(www\.)?", re.IGNORECASE)


def normalize_url(url: str) -> str:
    """Trim and ensure a scheme prefix (https by default)."""
    normalized = (url or "").strip()
    if not _SCHEME.match(normalized):
        normalized = "https://" + normalized
    return normalized


def _literal_host(url: str) -> str:
    stripped = _SCHEME_WWW.sub("", (url or "").strip())
    return re.split(r"[/?#:]", stripped, maxsplit=1)[0].lower()


def extract_domain(url: str) -> str:
    """
    Bare lower-cased hostname, leading "www." stripped.

        https://www.Example.com:8443/path → example.com
        not a url at all                   → not a url at all
    """
    try:
        host = urlsplit(normalize_url(url)).hostname or ""
    except ValueError:
        host = ""
    if not host:
        host = _literal_host(url)
    host = host.rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host
