from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.api.v1.router import api_router
from app.core.exceptions import LedgerError
from app.database import init_db, seed_owner, get_db_session
from app.models.audit_log import AuditAction
from app.services.audit_service import AuditService


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables
    - Seed the first owner account if configured
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()
    await seed_owner()

    yield

    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Authentication", "description": "JWT-based authentication"},
    {"name": "Users", "description": "Owner, production manager and distributor accounts"},
    {"name": "Manufacturing", "description": "Batches, costs, quality checks and output adjustments"},
    {"name": "Inventory", "description": "Finished goods by location"},
    {"name": "Inventory Transfers", "description": "Two-phase transfers between locations"},
    {"name": "Funds", "description": "Capital allocation, usage and returns"},
    {"name": "Purchases", "description": "Raw material purchases"},
    {"name": "Sales", "description": "Sales and payments"},
    {"name": "Payments", "description": "Payment reminders and voiding"},
]

API_DESCRIPTION = """
## Garment Ledger API

Inventory, production and money ledger for a garment manufacturer.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Validation failed |
| 401 | Unauthorized - Invalid/expired token |
| 403 | Forbidden - Role not allowed |
| 404 | Not Found - Resource doesn't exist |
| 409 | Conflict - Insufficient stock or funds, invalid state |
| 500 | Internal Server Error |

Mutating endpoints accept an `Idempotency-Key` header; a retry with the same
key returns the first response without applying the operation again.
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# ==================== FAILURE HANDLING ====================

def _module_from_path(path: str) -> str:
    """`/api/v1/fund-returns/3/approve` -> `fund_returns`."""
    parts = [part for part in path.strip("/").split("/") if part]
    if len(parts) >= 3 and parts[0] == "api":
        return parts[2].replace("-", "_")
    return parts[0].replace("-", "_") if parts else "app"


def _entity_from_path(request: Request) -> Optional[int]:
    for value in request.path_params.values():
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


async def _record_failure(request: Request, action: AuditAction, message: str) -> None:
    """
    Write the failure audit in its own session.

    The request transaction has already been rolled back, so this entry is
    the only trace the failed operation leaves.
    """
    actor = getattr(request.state, "actor", None)
    try:
        async with get_db_session() as session:
            await AuditService(session).log(
                action,
                _module_from_path(request.url.path),
                f"{request.method} {request.url.path} failed: {message}",
                entity_id=_entity_from_path(request),
                actor=actor,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
    except SQLAlchemyError:
        logger.exception(f"Could not write failure audit for {request.method} {request.url.path}")


def _error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    logger.warning(f"{request.method} {request.url.path} rejected: {type(exc).__name__}: {exc.message}")
    await _record_failure(request, AuditAction.ERROR, exc.message)
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in exc.errors()
    )
    message = f"Invalid request. {details}"
    await _record_failure(request, AuditAction.ERROR, message)
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    await _record_failure(request, AuditAction.ERROR, message)
    return _error_response(exc.status_code, message, getattr(exc, "headers", None))


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"{request.method} {request.url.path} hit a constraint: {exc.orig}")
    message = "The operation conflicts with existing records. Reload and try again."
    await _record_failure(request, AuditAction.ERROR, message)
    return _error_response(status.HTTP_409_CONFLICT, message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    await _record_failure(request, AuditAction.ERROR, f"Internal error ({type(exc).__name__}).")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["checks"]["database"] = "connected"
    except SQLAlchemyError as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
