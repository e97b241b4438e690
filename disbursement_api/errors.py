"""
errors.py -- Map kernel exceptions onto the HTTP error envelope.

Every failure leaves the API as
``{"status": "error", "message": <human text>, "error": <stable code>}``
with the status code carried by the exception class.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from disbursement_kernel.exceptions import DisbursementKernelError, PersistenceError, ValidationError
from disbursement_kernel.logging_config import get_logger

logger = get_logger("api.errors")


def error_body(message: str, code: str) -> dict[str, str]:
    return {"status": "error", "message": message, "error": code}


async def handle_kernel_error(request: Request, exc: DisbursementKernelError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(
            "request_failed",
            exc_info=exc,
            extra={"path": request.url.path, "error_code": exc.code},
        )
    else:
        logger.info(
            "request_rejected",
            extra={
                "path": request.url.path,
                "error_code": exc.code,
                "http_status": exc.http_status,
            },
        )
    return JSONResponse(status_code=exc.http_status, content=error_body(str(exc), exc.code))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies or path parameters are 400s, like any other validation failure."""
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in errors
    )
    logger.info("request_body_invalid", extra={"path": request.url.path, "detail": detail})
    return JSONResponse(
        status_code=400,
        content=error_body(f"Invalid request: {detail}", ValidationError.code),
    )


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    wrapped = PersistenceError("complete request", type(exc).__name__)
    logger.error(
        "database_error",
        exc_info=exc,
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=wrapped.http_status,
        content=error_body(str(wrapped), wrapped.code),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DisbursementKernelError, handle_kernel_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
