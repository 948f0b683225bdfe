"""
SoMi Flow API.

Wires logging, Sentry, CORS, request logging and the error envelope around
the flow, block, chain and routine routers. Every known failure leaves as
``{"detail": ..., "error_code": ...}``.
"""
import logging
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings
from core.database import check_db_connection
from core.exceptions import APIException
from core.logging import setup_logging
from routers import blocks, chain_entries, chains, embodiment_checks, flows, routines

setup_logging()
logger = logging.getLogger(__name__)

# Local Expo and web dev servers
DEV_ORIGINS = [
    "http://localhost:8081",
    "http://localhost:19006",
    "http://127.0.0.1:8081",
]

# Free text a user writes about their body never leaves for Sentry
PRIVATE_BODY_FIELDS = ("journalEntry", "journal_entry", "tags")


def _scrub_event(event, hint):
    request = event.get("request") or {}
    headers = request.get("headers")
    if isinstance(headers, dict):
        for name in ("authorization", "Authorization", "cookie", "Cookie"):
            headers.pop(name, None)
    data = request.get("data")
    if isinstance(data, dict):
        for field in PRIVATE_BODY_FIELDS:
            if field in data:
                data[field] = "[redacted]"
    return event


def init_sentry() -> None:
    if not settings.SENTRY_DSN:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
            integrations=[FastApiIntegration(transaction_style="endpoint"), SqlalchemyIntegration()],
            send_default_pii=False,
            before_send=_scrub_event,
        )
        logger.info(f"Sentry enabled ({settings.ENVIRONMENT})")
    except Exception as e:
        logger.error(f"Sentry init failed, continuing without it: {e}")


def cors_origins() -> list:
    """DEBUG allows everything; otherwise CORS_ORIGINS, else the dev servers."""
    if settings.DEBUG:
        return ["*"]
    if settings.CORS_ORIGINS:
        return [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    return list(DEV_ORIGINS)


init_sentry()

app = FastAPI(
    title="SoMi Flow API",
    description="Polyvagal-informed flow generation, quick routines and practice chains",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    started = time.perf_counter()
    fields = {"request_id": request_id, "method": request.method, "path": request.url.path}

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"{request.method} {request.url.path} raised",
            exc_info=True,
            extra={"extra_fields": {**fields, "error": str(e)}},
        )
        raise

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={"extra_fields": {**fields, "status_code": response.status_code, "duration_ms": elapsed_ms}},
    )
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(elapsed_ms / 1000)
    return response


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    if exc.status_code >= 500:
        logger.error(
            f"{exc.error_code}: {exc.detail}",
            extra={"extra_fields": {"method": request.method, "path": request.url.path}},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"},
    )


@app.get("/health")
async def health():
    """200 when the database answers, 503 otherwise."""
    if not check_db_connection():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "unavailable"},
        )
    return {"status": "healthy", "database": "ok", "timestamp": time.time()}


@app.get("/ping")
async def ping():
    return {"pong": True}


for module in (flows, blocks, chains, chain_entries, embodiment_checks, routines):
    app.include_router(module.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.API_RELOAD)
