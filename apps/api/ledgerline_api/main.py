"""Ledgerline API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text

from ledgerline_api.db.session import create_database
from ledgerline_api.errors import LedgerlineError, ValidationError
from ledgerline_api.middleware.correlation import CorrelationIDFilter, CorrelationIDMiddleware
from ledgerline_api.routes import actions, ai, transactions, webhooks
from ledgerline_api.settings import get_settings

settings = get_settings()

# Configure logging
_handler = logging.StreamHandler(sys.stdout)
_handler.addFilter(CorrelationIDFilter())
logging.basicConfig(
    level=settings.log_level,
    format=(
        '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", '
        '"module": "%(name)s", "correlation_id": "%(correlation_id)s"}'
    ),
    handlers=[_handler],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Ledgerline API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise

    app.state.database = create_database()
    logger.info(f"Database handle created ({app.state.database.dialect})")

    yield

    logger.info("Shutting down Ledgerline API...")
    app.state.database.dispose()


app = FastAPI(
    title="Ledgerline API",
    description="Idempotent transaction ingestion, audited AI answers and confirmed actions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)


@app.exception_handler(LedgerlineError)
async def ledgerline_error_handler(request: Request, exc: LedgerlineError):
    """Render domain errors as ``{"error": message}``."""
    logger.info(
        f"Request failed: {exc.message}",
        extra={"path": request.url.path, "error_type": exc.__class__.__name__},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Render malformed request bodies like any other ``ValidationError``."""
    fields = ", ".join(
        ".".join(str(part) for part in err["loc"] if part != "body") for err in exc.errors()
    )
    error = ValidationError(f"Invalid request fields: {fields}")
    logger.info(f"Request failed: {error.message}", extra={"path": request.url.path})
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Last-resort handler; the unit of work has already rolled back."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Request processing failed", "message": str(exc)},
    )


# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(webhooks.router)
app.include_router(ai.router)
app.include_router(actions.router)
app.include_router(transactions.router)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "ledgerline-api",
        "version": "0.1.0",
    }


@app.get("/ready")
def readiness_check(request: Request):
    """Readiness check endpoint (verifies dependencies)."""
    checks = {"database": False, "migrations": False, "llm_configured": bool(settings.openai_api_key)}

    database = request.app.state.database
    try:
        with database.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")

    if checks["database"]:
        try:
            import os

            from alembic.config import Config
            from alembic.runtime.migration import MigrationContext
            from alembic.script import ScriptDirectory

            with database.engine.connect() as connection:
                current_rev = MigrationContext.configure(connection).get_current_revision()

            alembic_ini_path = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")
            head_rev = ScriptDirectory.from_config(Config(alembic_ini_path)).get_current_head()

            checks["migrations"] = current_rev == head_rev
            if not checks["migrations"]:
                logger.warning(f"Migrations not at head: current={current_rev}, head={head_rev}")
        except Exception as e:
            logger.error(f"Migration check failed: {e}")

    all_ready = checks["database"] and checks["migrations"]
    return JSONResponse(
        content={"status": "ready" if all_ready else "not_ready", "checks": checks},
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Ledgerline API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
