"""
ShopTrust — Error taxonomy

    ShopTrustError
    ├── CollectorError              recoverable: becomes a neutral placeholder
    │   └── CollectorNotConfigured  provider API key missing
    ├── CacheBackendError           recoverable: cache degrades to pass-through
    └── WeightConfigurationError    fatal: deployment defect, surfaced to caller
"""


class ShopTrustError(Exception):
    """Base class for every error raised by the trust core."""


class CollectorError(ShopTrustError):
    """A signal collaborator failed (network, upstream status, parse)."""

    def __init__(self, signal_type: str, message: str):
        self.signal_type = signal_type
        super().__init__(f"{signal_type}: {message}")


class CollectorNotConfigured(CollectorError):
    """The provider behind a collaborator has no credentials configured."""


class CacheBackendError(ShopTrustError):
    """The cache storage medium is unreachable or returned garbage."""


class WeightConfigurationError(ShopTrustError):
    """A weighting policy does not distribute exactly 100 points."""
