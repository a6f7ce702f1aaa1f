"""
Global error handlers for FastAPI application
"""

import structlog
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from impact_api.core.exceptions import ImpactAPIError, LedgerIntegrityError, create_error_response

logger = structlog.get_logger()


async def impact_error_handler(request: Request, exc: ImpactAPIError) -> JSONResponse:
    """
    Handle domain exceptions raised by services and dependencies

    Args:
        request: FastAPI request object
        exc: ImpactAPIError exception

    Returns:
        JSONResponse with error details
    """
    logger.warning(
        "Domain error occurred",
        error_type=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc)
    )


async def ledger_integrity_error_handler(request: Request, exc: LedgerIntegrityError) -> JSONResponse:
    """Log ledger faults in full but keep their internals away from clients."""
    logger.error(
        "Ledger integrity fault",
        message=exc.message,
        details=exc.details,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "Impact totals could not be updated. Run a recalculation to repair them.",
            "error_type": "LedgerIntegrityError"
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException with the standard error envelope"""
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    if isinstance(exc.detail, dict):
        content = {
            "success": False,
            **exc.detail
        }
    else:
        content = {
            "success": False,
            "message": str(exc.detail),
            "error_type": "HTTPException"
        }

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None)
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors

    Args:
        request: FastAPI request object
        exc: RequestValidationError

    Returns:
        JSONResponse with validation error details
    """
    logger.warning(
        "Validation error occurred",
        errors=exc.errors(),
        path=request.url.path,
        method=request.method
    )

    formatted_errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        formatted_errors.append({
            "field": field_path,
            "message": error["msg"],
            "type": error["type"]
        })

    content = {
        "success": False,
        "message": "Validation error occurred",
        "error_type": "ValidationError",
        "details": {
            "validation_errors": formatted_errors
        }
    }

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle SQLAlchemy database errors

    Args:
        request: FastAPI request object
        exc: SQLAlchemyError

    Returns:
        JSONResponse with database error details
    """
    logger.error(
        "Database error occurred",
        error_type=exc.__class__.__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method
    )

    if isinstance(exc, IntegrityError):
        error_msg = str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc)

        if "UNIQUE constraint failed" in error_msg or "duplicate key" in error_msg.lower():
            content = {
                "success": False,
                "message": "A record with this information already exists",
                "error_type": "ConflictError",
                "details": {
                    "constraint_violation": "unique_constraint"
                }
            }
            status_code = status.HTTP_409_CONFLICT
        elif "FOREIGN KEY constraint failed" in error_msg or "foreign key" in error_msg.lower():
            content = {
                "success": False,
                "message": "Referenced record does not exist",
                "error_type": "ValidationError",
                "details": {
                    "constraint_violation": "foreign_key_constraint"
                }
            }
            status_code = status.HTTP_400_BAD_REQUEST
        else:
            content = {
                "success": False,
                "message": "Database integrity constraint violation",
                "error_type": "IntegrityError"
            }
            status_code = status.HTTP_400_BAD_REQUEST
    else:
        content = {
            "success": False,
            "message": "Database operation failed",
            "error_type": "DatabaseError"
        }
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(
        status_code=status_code,
        content=content
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    logger.error(
        "Unexpected error occurred",
        error_type=exc.__class__.__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True
    )

    content = {
        "success": False,
        "message": "An unexpected error occurred. Please try again later.",
        "error_type": "InternalServerError"
    }

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content
    )


def register_error_handlers(app):
    """
    Register all error handlers with the FastAPI application

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(LedgerIntegrityError, ledger_integrity_error_handler)
    app.add_exception_handler(ImpactAPIError, impact_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
