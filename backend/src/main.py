"""
Medical Record Template Engine API

A FastAPI application serving structured, tenant-scoped medical record
templates.

Features:
- Template management with one default template per type/specialty bucket
- Template application with advisory validation
- Usage tracking, statistics and recommendations
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import clinic
from core.constants import CORS_ORIGINS
from services.template_exceptions import (
    TemplateInactiveError,
    TemplateNotFoundError,
    TemplatePersistenceError,
    TemplateTransactionConflictError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("Medical Record Template API starting...")


# Create FastAPI application
app = FastAPI(
    title="Medical Record Template Engine",
    description="Structured medical record templates with validation, usage tracking and recommendations",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    clinic.router,
    prefix="/api/clinic",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Medical Record Template Engine API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )


@app.exception_handler(TemplateNotFoundError)
async def template_not_found_handler(request: Request, exc: TemplateNotFoundError):
    """Template id does not resolve in the caller's tenant."""
    return JSONResponse(
        status_code=404,
        content={"detail": "Template not found", "type": "template_not_found"},
    )


@app.exception_handler(TemplateInactiveError)
async def template_inactive_handler(request: Request, exc: TemplateInactiveError):
    """Template is soft-deleted."""
    return JSONResponse(
        status_code=409,
        content={"detail": "Template is not active", "type": "template_inactive"},
    )


@app.exception_handler(TemplateTransactionConflictError)
async def template_conflict_handler(request: Request, exc: TemplateTransactionConflictError):
    """Default promotion kept losing to concurrent writers."""
    logger.warning(f"Template transaction conflict: {exc}")
    return JSONResponse(
        status_code=409,
        content={"detail": "Template was modified concurrently, please retry", "type": "template_conflict"},
    )


@app.exception_handler(TemplatePersistenceError)
async def template_persistence_handler(request: Request, exc: TemplatePersistenceError):
    """Storage failure while reading or writing templates."""
    logger.error(f"Template persistence error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Failed to access template storage", "type": "persistence_error"},
    )
