"""
ShopTrust — Check API

Public endpoints (no auth):
    POST /v1/check    - Trust verdict for one shop URL
    GET  /v1/health   - Health check
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
import structlog

from shoptrust.compute.pipeline import TrustEvaluator, get_evaluator
from shoptrust.errors import WeightConfigurationError

logger = structlog.get_logger()

MAX_URL_LENGTH = 2048


# =============================================
# REQUEST MODELS
# =============================================

class CheckRequest(BaseModel):
    """The URL as the user typed it; scheme optional."""
    url: Optional[str] = Field(default=None, max_length=MAX_URL_LENGTH)
    force_refresh: bool = False


# =============================================
# ROUTES
# =============================================

router = APIRouter(prefix="/v1", tags=["Check"])


@router.post("/check")
async def check(
    body: CheckRequest,
    evaluator: TrustEvaluator = Depends(get_evaluator),
) -> Dict[str, Any]:
    url = (body.url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="url is required")

    try:
        result = await evaluator.evaluate(url, force_refresh=body.force_refresh)
    except WeightConfigurationError as e:
        logger.error("weight_configuration_error", url=url, error=str(e))
        raise HTTPException(status_code=500, detail="scoring is misconfigured") from e
    return result.to_dict()


@router.get("/health")
async def health(evaluator: TrustEvaluator = Depends(get_evaluator)) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": "shoptrust",
        "policy_version": evaluator.policy.version,
        "cache_backend": evaluator.cache_backend_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
