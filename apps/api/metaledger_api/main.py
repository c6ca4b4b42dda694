"""MetaLedger API - Main FastAPI application."""

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from metaledger_api.metadata.errors import MetadataError
from metaledger_api.middleware.correlation import CorrelationIDMiddleware
from metaledger_api.routes import bulk, candidates, metadata
from metaledger_api.settings import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}'
    if settings.log_format == "json"
    else "%(asctime)s %(levelname)s %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting MetaLedger API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
    yield
    logger.info("Shutting down MetaLedger API...")


app = FastAPI(
    title="MetaLedger API",
    description="Append-only metadata ledger with approval, override and bulk workflows",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(metadata.router)
app.include_router(candidates.router)
app.include_router(bulk.router)


@app.exception_handler(MetadataError)
async def metadata_error_handler(request: Request, exc: MetadataError):
    """Map domain errors to their HTTP status and a structured body."""
    logger.info(
        f"{exc.code}: {exc.message}",
        extra={"path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(content=exc.to_dict(), status_code=exc.status_code)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "metaledger-api",
        "version": "0.1.0",
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    from sqlalchemy import text

    from metaledger_api.db.session import SessionLocal

    checks = {
        "database": False,
        "migrations": False,
        "redis": None,  # None if not required
    }

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    # Check Alembic migrations are at head
    if checks["database"]:
        try:
            from alembic.config import Config
            from alembic.runtime.migration import MigrationContext
            from alembic.script import ScriptDirectory

            db = SessionLocal()
            try:
                context = MigrationContext.configure(db.connection())
                current_rev = context.get_current_revision()
                alembic_ini_path = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")
                alembic_cfg = Config(alembic_ini_path)
                head_rev = ScriptDirectory.from_config(alembic_cfg).get_current_head()
                checks["migrations"] = current_rev == head_rev
                if not checks["migrations"]:
                    logger.warning(f"Migrations not at head: current={current_rev}, head={head_rev}")
            finally:
                db.close()
        except Exception as e:
            logger.error(f"Migration check failed: {e}")

    # Redis only backs preview tokens when configured to
    if settings.bulk_preview_store == "redis":
        try:
            import redis

            redis.from_url(settings.redis_url, decode_responses=True).ping()
            checks["redis"] = True
        except Exception as e:
            logger.error(f"Redis check failed: {e}")
            checks["redis"] = False

    all_ready = all(value for value in checks.values() if value is not None)
    return JSONResponse(
        content={"status": "ready" if all_ready else "not_ready", "checks": checks},
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "MetaLedger API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
