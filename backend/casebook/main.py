"""
Casebook Reports Backend - custom report builder and invoice tax engine.

ARCHITECTURE:
- Report builder: declarative QueryDefinition -> parameter-bound SQL over
  an allow-listed registry of practice tables
- Billing: GST/TDS calculator and the invoice flow that applies it
- SQLAlchemy DB: SQLite by default, PostgreSQL in production

SAFETY MODEL:
- Identifiers come only from the data source registry; values are always bound
- Report queries run with a database-enforced timeout
- Template mutations are owner-only and audit-logged
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from casebook.api.routes import billing, reports
from casebook.core.config import settings
from casebook.core.exceptions import CasebookError
from casebook.db.database import Database
from casebook.db.init_db import init_db
from casebook.db.session import engine
from casebook.services.data_sources import default_registry
from casebook.services.query_builder import QueryBuilder
from casebook.services.tax_service import TaxCalculator, TaxRates

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Initialize database tables
    2. Build the shared, immutable report builder and tax calculator
    """
    logger.info("[*] Initializing database...")
    init_db()

    database = Database(engine)
    app.state.registry = default_registry()
    app.state.query_builder = QueryBuilder(app.state.registry, dialect=database.dialect)
    app.state.database = database
    app.state.tax_calculator = TaxCalculator(TaxRates.from_settings(settings))
    logger.info(f"[OK] Report builder ready ({database.dialect}, {len(app.state.registry)} data sources)")

    yield


app = FastAPI(
    title="Casebook Reports API",
    description="Custom report builder and GST/TDS invoice engine for legal practices.",
    version="0.1.0",
    lifespan=lifespan,
)

# SECURITY: Trust only specific hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],
    max_age=600,  # Cache preflight for 10 minutes
    expose_headers=["Content-Type", "Content-Disposition"],
)


# SECURITY: Add security headers middleware
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(CasebookError)
async def casebook_error_handler(request: Request, exc: CasebookError):
    """
    Render domain errors as {"detail", "code"}.

    SECURITY: 5xx responses carry a generic message; the cause and SQL stay in the logs.
    """
    if exc.status_code >= 500:
        logger.error(f"[ERROR] {exc.code} on {request.url.path}: {exc.message}", exc_info=exc)
    else:
        logger.info(f"[WARN] {exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.public_message, "code": exc.code},
    )


app.include_router(reports.router, prefix="/custom-report-builder", tags=["reports"])
app.include_router(billing.router, prefix="/billing", tags=["billing"])


@app.get("/health")
def health():
    return {"status": "ok"}
