"""
ShopTrust — Configuration

All settings load from environment variables with safe defaults for
development. A local .env file is honoured via python-dotenv.
"""
import os
from functools import lru_cache
from typing import Dict, List

from dotenv import load_dotenv

from shoptrust.trust.models import SignalType

load_dotenv()

DAY = 86400
HOUR = 3600


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.ENVIRONMENT = os.getenv("SHOPTRUST_ENV", "development")

        # === Cache ===
        self.REDIS_URL = os.getenv("REDIS_URL", "")
        self.CACHE_BACKEND = os.getenv("SHOPTRUST_CACHE_BACKEND", "auto").lower()
        self.CACHE_TTL_DOMAIN_AGE = int(os.getenv("CACHE_TTL_DOMAIN_AGE", 30 * DAY))
        self.CACHE_TTL_CERTIFICATE = int(os.getenv("CACHE_TTL_CERTIFICATE", 7 * DAY))
        self.CACHE_TTL_HEURISTICS = int(os.getenv("CACHE_TTL_HEURISTICS", 30 * DAY))
        self.CACHE_TTL_MALWARE_FILTER = int(os.getenv("CACHE_TTL_MALWARE_FILTER", 24 * HOUR))
        self.CACHE_TTL_REPUTATION = int(os.getenv("CACHE_TTL_REPUTATION", 24 * HOUR))
        self.CACHE_TTL_REVIEWS = int(os.getenv("CACHE_TTL_REVIEWS", 6 * HOUR))
        self.CACHE_TTL_AGGREGATE = int(os.getenv("CACHE_TTL_AGGREGATE", 24 * HOUR))
        self.CACHE_TTL_DANGER_MAX = int(os.getenv("CACHE_TTL_DANGER_MAX", 1 * HOUR))

        # === Signal collection ===
        self.SIGNAL_TIMEOUT_SECONDS = float(os.getenv("SIGNAL_TIMEOUT_SECONDS", "15"))
        self.HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
        self.STOREFRONT_SCAN_ENABLED = _bool("STOREFRONT_SCAN_ENABLED", "true")
        self.USE_MOCKS = _bool("SHOPTRUST_USE_MOCKS", "false")
        self.USER_AGENT = os.getenv(
            "SHOPTRUST_USER_AGENT", "ShopTrust/1.0 (+https://github.com/shoptrust/shoptrust)"
        )

        # === Provider keys ===
        self.GOOGLE_SAFE_BROWSING_KEY = os.getenv("GOOGLE_SAFE_BROWSING_KEY", "")
        self.IPQS_API_KEY = os.getenv("IPQS_API_KEY", "")
        self.SERP_API_KEY = os.getenv("SERP_API_KEY", "")

        # === Scoring ===
        self.WEIGHT_POLICY = os.getenv("SHOPTRUST_WEIGHT_POLICY", "complementary-v2")

        # === Application ===
        self.HOST = os.getenv("SHOPTRUST_HOST", "0.0.0.0")
        self.PORT = int(os.getenv("SHOPTRUST_PORT", "8000"))
        self.CORS_ORIGINS: List[str] = [
            o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
        ]

    @property
    def signal_ttls(self) -> Dict[SignalType, int]:
        return {
            SignalType.DOMAIN_AGE: self.CACHE_TTL_DOMAIN_AGE,
            SignalType.CERTIFICATE: self.CACHE_TTL_CERTIFICATE,
            SignalType.HEURISTICS: self.CACHE_TTL_HEURISTICS,
            SignalType.MALWARE_FILTER: self.CACHE_TTL_MALWARE_FILTER,
            SignalType.REPUTATION: self.CACHE_TTL_REPUTATION,
            SignalType.REVIEWS: self.CACHE_TTL_REVIEWS,
        }


@lru_cache()
def get_settings() -> Settings:
    return Settings()
