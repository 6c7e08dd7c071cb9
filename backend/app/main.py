"""
Solvex Finance - FastAPI Application

Main entry point for the backend API.
Provides authentication, account lockout, password reset and Stripe
subscription endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.exceptions import (
    FinanceAppError,
    InternalError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"Solvex Finance Backend starting in {settings.environment} mode...")

    if settings.database_url:
        from app.infrastructure.db.database import init_db
        await init_db()
        logger.info("Database connection pool initialized")
    else:
        logger.warning("DATABASE_URL not set; database-backed endpoints will fail")

    yield

    # Shutdown
    if settings.database_url:
        from app.infrastructure.db.database import close_db
        await close_db()
        logger.info("Database connection pool closed")

    logger.info("Solvex Finance Backend shutting down...")


app = FastAPI(
    title="Solvex Finance",
    description="Personal finance backend: accounts, lockout, password reset and billing",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(FinanceAppError)
async def app_error_handler(request: Request, exc: FinanceAppError):
    """Handle all application errors with their own status code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_kind} on {request.url.path}: {exc.message}", exc_info=exc.original_error)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Map malformed or missing request fields to the ValidationError shape."""
    fields = sorted({
        ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        for error in exc.errors()
    })
    error = ValidationError("Missing or invalid fields", {"fields": fields})
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Last resort: never expose internals."""
    logger.exception(f"Unhandled error on {request.url.path}")
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "solvex-finance"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Solvex Finance API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import auth, billing  # noqa: E402

app.include_router(auth.router, prefix="/api", tags=["Auth"])
app.include_router(billing.router, prefix="/api", tags=["Billing"])
