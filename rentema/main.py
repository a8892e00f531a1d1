"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from rentema.core.config import settings
from rentema.core.errors import EngineError
from rentema.core.structured_logging import build_log_context
from rentema.db.session import engine

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Tenant names and answers stay out of Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from rentema.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Rentema API",
    description="Rental inquiry qualification and scheduling workflow engine",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# Rate limiter; the middleware applies the API-wide default to every route
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Map engine errors to their HTTP status with a stable ``code``."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code}: {exc.message}",
            extra=build_log_context(route=request.url.path, method=request.method),
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_exception_handler(EngineError, engine_error_handler)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With"],
)

# ============================================================================
# Routers
# ============================================================================

from rentema.routers import inquiries, properties, scheduling

app.include_router(properties.router, prefix="/properties", tags=["properties"])
app.include_router(inquiries.router, prefix="/inquiries", tags=["inquiries"])
app.include_router(scheduling.router, prefix="/scheduling", tags=["scheduling"])

# Public booking and questionnaire links (unauthenticated, rate limited)
from rentema.routers import public_booking, public_questionnaire
app.include_router(public_booking.router)  # Already has /public/booking prefix
app.include_router(public_questionnaire.router)

# Test mode (synthetic inquiries)
from rentema.routers import test_mode
app.include_router(test_mode.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
