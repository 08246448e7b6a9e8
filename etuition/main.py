"""Main FastAPI application for eTuition"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from etuition.api import applications, health, payments, tuitions, tutors, users, webhooks
from etuition.config import settings
from etuition.db.database import close_db, init_db
from etuition.middleware.logging import LoggingMiddleware
from etuition.middleware.request_id import RequestIDMiddleware
from etuition.services.exceptions import DomainError
from etuition.utils.logging import setup_logging

# Set up logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting eTuition application...")

    issues = settings.validate_configuration()
    for warning in issues["warnings"]:
        logger.warning(f"Configuration warning: {warning}")
    for error in issues["errors"]:
        logger.error(f"Configuration error: {error}")

    await init_db()
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down eTuition application...")
    await close_db()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="eTuition API",
    description="""
    ## Tuition marketplace backend

    Students post tuition requests, tutors apply to them, and a student hires a
    tutor by paying through Stripe Checkout.

    ### Workflow
    1. **Post Tuition** → Student creates a request, admin approves it
    2. **Apply** → Tutors apply with qualifications and expected salary
    3. **Checkout** → Student pays for one application
    4. **Settlement** → Payment recorded, application approved, tuition booked,
       competing applications rejected
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.app_debug else None,
    redoc_url="/redoc" if settings.app_debug else None,
)

# Configure middleware (last added runs first)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)


@app.get("/", response_class=JSONResponse)
async def api_status() -> dict[str, Any]:
    """API status endpoint for programmatic access"""
    return {
        "name": "eTuition API",
        "version": "0.1.0",
        "status": "operational",
        "payments": settings.is_payments_configured(),
        "docs": "/docs" if settings.app_debug else None,
    }


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(users.router, prefix="/api/v1/users", tags=["users"])
app.include_router(tuitions.router, prefix="/api/v1/tuitions", tags=["tuitions"])
app.include_router(applications.router, prefix="/api/v1/applications", tags=["applications"])
app.include_router(tutors.router, prefix="/api/v1/tutors", tags=["tutors"])
app.include_router(payments.router, prefix="/api/v1")
app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["webhooks"])


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}", exc_info=exc)
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    # A malformed identifier in the path can never match a record
    if errors and all(error.get("loc", ("",))[0] == "path" for error in errors):
        return JSONResponse(status_code=404, content={"message": "not found"})
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "message": str(exc) if settings.app_debug else "An error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "etuition.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )
