"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.rate_limit import limiter
from app.core.structured_logging import build_log_context
from app.db.session import engine
from app.jobs.dispatcher import dispatcher
from app.routers import campaigns, jobs, subscriptions

logger = logging.getLogger(__name__)

# Seconds to let in-flight sends reach their next checkpoint on shutdown
SHUTDOWN_DRAIN_SECONDS = 5.0


def _init_sentry() -> None:
    """Error tracking outside dev, only when a DSN is configured."""
    if not settings.SENTRY_DSN or settings.is_dev:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.VERSION,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Recipient addresses stay out of Sentry
    )
    logger.info("Sentry initialized for error tracking")


_init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Unfinished sends keep their pending rows; resume or the worker picks them up
    await dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)


app = FastAPI(
    title="Itemize API",
    description="Campaign sending and usage accounting for the itemize CRM",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Services roll back before re-raising; the caller only sees a 500."""
    logger.error(
        "Database error: %s",
        type(exc).__name__,
        exc_info=exc,
        extra=build_log_context(route=request.url.path),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# CORS must wrap the routers so preflight requests never reach auth
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Session cookie
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With"],
)

app.include_router(campaigns.router, prefix="/campaigns")
app.include_router(jobs.router, prefix="/jobs")
app.include_router(subscriptions.router, prefix="/subscription")


@app.get("/health")
def health():
    """Liveness plus a database round trip."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
