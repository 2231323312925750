"""Restaurant order pipeline - FastAPI application."""

import asyncio
import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError
from starlette.middleware.base import BaseHTTPMiddleware

from rms.api.realtime import broadcaster, ws_manager
from rms.api.realtime import router as realtime_router
from rms.api.routes import api_router
from rms.core.config import settings
from rms.core.errors import ConcurrentUpdate, ServiceError
from rms.core.rate_limit import limiter
from rms.db.base import Base
from rms.db.session import SessionLocal, engine
from rms.services.events import event_bus
from rms.services.notifications import WaitlistNotifier

VERSION = "1.0.0"

# Paths polled by health checks and docs; not worth a log line each
QUIET_PATHS = frozenset({"/", "/health", "/health/ready", "/docs", "/openapi.json"})


class JSONFormatter(logging.Formatter):
    """One JSON object per record for log shippers."""

    def format(self, record):
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging() -> None:
    """Human-readable lines in debug, JSON on stdout otherwise."""
    if settings.debug:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s [%(name)s] %(message)s")
        )
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level)


configure_logging()
logger = logging.getLogger(__name__)
access_logger = logging.getLogger("rms.access")


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of every API call."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        client = request.client.host if request.client else "-"
        try:
            response = await call_next(request)
        except Exception:
            access_logger.exception(
                "%s %s failed after %.1fms (client %s)",
                request.method,
                request.url.path,
                (time.perf_counter() - started) * 1000,
                client,
            )
            raise

        access_logger.log(
            logging.WARNING if response.status_code >= 400 else logging.INFO,
            "%s %s -> %d in %.1fms (client %s)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            client,
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Restaurant order pipeline %s starting", VERSION)

    # SQLite is the dev/test backend; other databases are migrated with alembic
    if engine.url.get_backend_name() == "sqlite":
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite schema ensured")

    broadcaster.bind(asyncio.get_running_loop())
    notifier = WaitlistNotifier()
    for subscriber in (broadcaster, notifier):
        event_bus.subscribe(subscriber)

    yield

    for subscriber in (notifier, broadcaster):
        event_bus.unsubscribe(subscriber)
    logger.info("Restaurant order pipeline stopped")


app = FastAPI(
    title="Restaurant Order Pipeline",
    description="Kitchen fulfillment, table combination, waitlist and payment reconciliation API",
    version=VERSION,
    lifespan=lifespan,
    redirect_slashes=True,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning("Concurrent update rejected on %s %s: %s", request.method, request.url.path, exc)
    error = ConcurrentUpdate("The record was changed by another request; retry with fresh data")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "detail": "An unexpected error occurred"},
    )


app.add_middleware(AccessLogMiddleware)
# Added last so it wraps everything else
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
    max_age=600,
)

app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(realtime_router)


@app.get("/health")
def health_check():
    return {"status": "healthy", "version": VERSION}


@app.get("/health/ready")
def readiness_check():
    """Database round trip plus the number of live WebSocket clients."""
    with SessionLocal() as db:
        try:
            db.execute(text("SELECT 1"))
            database_ok = True
        except Exception as e:
            logger.error("Readiness database check failed: %s", e)
            database_ok = False

    return {
        "status": "ready" if database_ok else "degraded",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "healthy" if database_ok else "unhealthy",
            "websocket_connections": ws_manager.get_connection_count(),
        },
    }


@app.get("/")
def root():
    return {
        "message": "Restaurant Order Pipeline API",
        "docs": "/docs",
        "health": "/health",
    }
