"""
Error taxonomy and the translation of errors into HTTP responses.

Handlers raise the exceptions defined here; ``register_exception_handlers``
maps each one to a status code and a ``{"error": {"kind", "detail"}}`` body
in a single place.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PortfolioError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    kind = "PortfolioError"
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(PortfolioError):
    status_code = 400
    kind = "ValidationError"
    default_detail = "Invalid request"


class AuthError(PortfolioError):
    status_code = 401
    kind = "AuthError"
    default_detail = "Not authenticated"


class InvalidCredentials(AuthError):
    kind = "InvalidCredentials"
    default_detail = "Invalid credentials"


class MissingToken(AuthError):
    kind = "MissingToken"
    default_detail = "No token provided"


class InvalidToken(AuthError):
    status_code = 403
    kind = "InvalidToken"
    default_detail = "Invalid or expired token"


class NotFoundError(PortfolioError):
    status_code = 404
    kind = "NotFoundError"
    default_detail = "Not found"


class StorageError(PortfolioError):
    status_code = 500
    kind = "StorageError"
    default_detail = "Storage failure"


class StorageTimeout(StorageError):
    kind = "StorageTimeout"
    default_detail = "Storage operation timed out"


class InternalError(PortfolioError):
    kind = "InternalError"


def error_body(kind: str, detail: str) -> dict:
    return {"error": {"kind": kind, "detail": detail}}


async def handle_portfolio_error(request: Request, exc: PortfolioError) -> JSONResponse:
    if exc.status_code >= 500:
        # Full cause goes to the server log; the client gets the generic text.
        logger.error(
            "%s on %s %s: %s",
            exc.kind,
            request.method,
            request.url.path,
            exc.detail,
            exc_info=exc.__cause__ or exc,
        )
        detail = exc.default_detail
    else:
        detail = exc.detail
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.kind, detail))


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    detail = "; ".join(problems) or ValidationError.default_detail
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=error_body(ValidationError.kind, detail),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=InternalError.status_code,
        content=error_body(InternalError.kind, InternalError.default_detail),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortfolioError, handle_portfolio_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
