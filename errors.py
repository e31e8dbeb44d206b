from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from logging_setup import get_logger

logger = get_logger(__name__)


class ApiError(Exception):
    """Base class for errors raised by the domain operations."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Conflict(ApiError):
    status_code = 400


class NotFound(ApiError):
    status_code = 404


class ValidationError(ApiError):
    status_code = 400

    def __init__(self, message: str = "Validation error", errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidCredentials(ApiError):
    status_code = 401


class InsufficientStock(ApiError):
    status_code = 400


def envelope(success: bool, **fields: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": success}
    body.update({k: v for k, v in fields.items() if v is not None})
    return body


def _format_request_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    error = "; ".join(exc.errors) if isinstance(exc, ValidationError) and exc.errors else None
    return JSONResponse(status_code=exc.status_code, content=envelope(False, message=exc.message, error=error))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=envelope(False, message="Validation error", error=_format_request_errors(exc)),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=envelope(False, message=message))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=envelope(False, message="Internal server error"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
