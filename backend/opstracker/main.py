"""FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .audit import audit_mutations
from .config import DEV_JWT_SECRET, DEV_SEED_SECRET, settings
from .database import run_migrations
from .domain_errors import DomainError
from .problem_details import handle_domain_error, handle_request_validation_error, handle_unexpected_error
from .routers import (
    attendance,
    auth,
    documents,
    equipment,
    materials,
    notifications,
    projects,
    reports,
    seed,
    sites,
    tasks,
    users,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Production safety checks (fail closed on insecure config).
if settings.is_production and settings.JWT_SECRET_KEY == DEV_JWT_SECRET:
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.is_production and settings.SEED_SECRET == DEV_SEED_SECRET:
    raise RuntimeError("SEED_SECRET must be changed in production.")
if settings.is_production and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.is_production and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")
if settings.is_production and any(
    host in origin for origin in settings.cors_origins for host in ("localhost", "127.0.0.1")
):
    raise RuntimeError("ALLOWED_ORIGINS must not point at localhost in production.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        run_migrations()
    logger.info("%s started (env=%s)", settings.APP_NAME, settings.ENV)
    yield


# Create app
app = FastAPI(
    title="OpsTracker",
    version="1.0.0",
    description="Backend API for construction site operations",
    lifespan=lifespan,
)

app.add_exception_handler(DomainError, handle_domain_error)
app.add_exception_handler(RequestValidationError, handle_request_validation_error)
app.add_exception_handler(Exception, handle_unexpected_error)

app.middleware("http")(audit_mutations)

# CORS
cors_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if not settings.is_production:
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)

# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(projects.router, prefix="/api")
app.include_router(sites.router, prefix="/api")
app.include_router(tasks.router, prefix="/api")
app.include_router(materials.router, prefix="/api")
app.include_router(equipment.router, prefix="/api")
app.include_router(attendance.router, prefix="/api")
app.include_router(documents.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(reports.router, prefix="/api")
app.include_router(seed.router, prefix="/api")


@app.get("/health")
@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": "1.0.0"}


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "OpsTracker API",
        "version": "1.0.0",
        "docs": "/docs",
    }
