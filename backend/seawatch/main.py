"""SeaWatch API: position queries, realtime change channel, feed session control."""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import IntegrityError

from seawatch.api.deps import get_notifier, limiter
from seawatch.api.routes import router
from seawatch.config import settings
from seawatch.database import init_db
from seawatch.exceptions import FeedConfigurationError, StoreError
from seawatch.schemas.error import ErrorResponse

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(application: FastAPI):
    init_db()
    if settings.AISSTREAM_API_KEY:
        logger.info("aisstream.io credential configured")
    else:
        logger.warning("AISSTREAM_API_KEY not set; feed sessions cannot be started")
    yield
    logger.info("Shutting down with %d realtime subscriber(s) attached", get_notifier().subscriber_count)


app = FastAPI(
    title="SeaWatch",
    description="Live vessel-position ingestion and latest-position projection.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Default per-client limit applies to every HTTP route
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.include_router(router, prefix="/api/v1")


# ---------------------------------------------------------------------------
# Error responses
# ---------------------------------------------------------------------------


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _feed_not_configured(request: Request, exc: FeedConfigurationError):
    return _error(503, "Feed not configured", str(exc))


async def _store_unavailable(request: Request, exc: StoreError):
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return _error(503, "Store unavailable", "The position store could not be reached.")


async def _invalid_value(request: Request, exc: ValueError):
    return _error(422, "Validation error", str(exc))


async def _conflict(request: Request, exc: IntegrityError):
    return _error(409, "Conflict", str(exc.orig) if exc.orig else str(exc))


async def _unhandled(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s:\n%s", request.method, request.url.path, traceback.format_exc())
    return _error(500, "Internal server error", "An unexpected error occurred.")


for _exc_class, _handler in (
    (RateLimitExceeded, _rate_limit_exceeded_handler),
    (FeedConfigurationError, _feed_not_configured),
    (StoreError, _store_unavailable),
    (ValueError, _invalid_value),
    (IntegrityError, _conflict),
    (Exception, _unhandled),
):
    app.add_exception_handler(_exc_class, _handler)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "version": API_VERSION}
