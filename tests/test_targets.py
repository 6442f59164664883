import pytest

from shoptrust.compute.targets import extract_domain, normalize_url


@pytest.mark.parametrize("raw,expected", [
    ("example.com", "https://example.com"),
    ("  example.com/path ", "https://example.com/path"),
    ("http://example.com", "http://example.com"),
    ("HTTPS://example.com", "HTTPS://example.com"),
])
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("https://www.Example.com:8443/path?q=1", "example.com"),
    ("www.shop.it", "shop.it"),
    ("shop.it.", "shop.it"),
    ("sub.shop.co.uk", "sub.shop.co.uk"),
    ("http://[not-ipv6/path", "[not-ipv6"),
])
def test_extract_domain(raw, expected):
    assert extract_domain(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "://", "http://", "not a url", "http://[::1"])
def test_extract_domain_never_raises(raw):
    assert isinstance(extract_domain(raw), str)
