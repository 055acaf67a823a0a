"""
Domain errors and the handlers that turn them into the response envelope.

Every error response has the shape ``{"success": false, "message": ...}``;
field-level validation failures also carry an ``errors`` list.
"""
from typing import List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings


logger = structlog.get_logger()


class AppError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation error"


class DuplicateName(AppError):
    status_code = 400
    default_message = "An entry with this name already exists"


class InvalidReference(AppError):
    status_code = 400
    default_message = "Invalid reference"


class HasDependents(AppError):
    status_code = 400
    default_message = "Entry is still in use"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Authentication required"


class InvalidToken(Unauthenticated):
    default_message = "Invalid token"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


def error_body(message: str, errors: Optional[List[str]] = None, detail: Optional[str] = None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    if detail and settings.is_development:
        body["error"] = detail
    return body


def _format_errors(raw_errors) -> List[str]:
    messages = []
    for err in raw_errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        msg = err.get("msg", "Invalid value")
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return messages


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body("Validation error", _format_errors(exc.errors())))


async def pydantic_validation_handler(request: Request, exc: PydanticValidationError):
    return JSONResponse(status_code=400, content=error_body("Validation error", _format_errors(exc.errors())))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=getattr(exc, "headers", None))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limited", path=request.url.path, limit=str(exc.detail))
    return JSONResponse(status_code=429, content=error_body("Too many requests, please try again later"))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("Internal server error", detail=str(exc)))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
