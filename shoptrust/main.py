"""
ShopTrust — HTTP Service
Trust verdicts for e-commerce shops, one URL at a time.

Start with:
    uvicorn shoptrust.main:app --host 0.0.0.0 --port 8000
"""
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from shoptrust.api.check import router as check_router
from shoptrust.compute.pipeline import close_evaluator, get_evaluator, shutdown
from shoptrust.config import get_settings

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)
logger = structlog.get_logger()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("service_starting", version=VERSION, environment=settings.ENVIRONMENT)
    evaluator = get_evaluator()
    logger.info(
        "pipeline_initialized",
        policy=evaluator.policy.version,
        cache_backend=evaluator.cache_backend_name,
    )

    yield

    await close_evaluator()
    shutdown()
    logger.info("service_stopped")


app = FastAPI(
    title="ShopTrust",
    description="Trust scoring for e-commerce domains.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id", "X-Response-Time"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())[:8]
    start = time.time()
    request.state.request_id = request_id
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 2)
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms}ms"
    if request.url.path != "/v1/health":
        logger.info("request",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms,
                    request_id=request_id)
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception",
                 path=request.url.path,
                 error=str(exc),
                 type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


app.include_router(check_router)


@app.get("/")
async def root():
    return {
        "name": "ShopTrust",
        "version": VERSION,
        "endpoints": {
            "check": "POST /v1/check {\"url\": ...}",
            "health": "GET /v1/health",
            "docs": "GET /docs",
        },
    }


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("shoptrust.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
