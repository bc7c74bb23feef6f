# heritage_admin/core/errors.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DependencyError(Exception):
    """A hosted collaborator (auth, storage, billing, geocoder) failed."""

    dependency = "dependency"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IdentityProviderError(DependencyError):
    dependency = "identity"


class StorageError(DependencyError):
    dependency = "storage"


class BillingError(DependencyError):
    dependency = "billing"


class GeocodingError(DependencyError):
    dependency = "geocoder"


class WebhookSignatureError(Exception):
    pass


def _field_name(loc) -> str:
    # ("body", "state") -> "state"; ("query", "limit") -> "limit"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


def _describe(err) -> tuple[str, str]:
    # loc for an unparsable body is ("body", <char offset>)
    if err.get("type") == "json_invalid":
        return "body", "Invalid JSON"
    msg = str(err.get("msg", "Invalid value"))
    # pydantic prefixes custom ValueError messages with "Value error, "
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return _field_name(err.get("loc", ())), msg


def _first_error_message(errors) -> str:
    if not errors:
        return "Invalid request"
    field, msg = _describe(errors[0])
    return f"{field}: {msg}"


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": _first_error_message(errors),
            "errors": [{"field": field, "message": msg} for field, msg in map(_describe, errors)],
        },
    )


async def dependency_exception_handler(request: Request, exc: DependencyError) -> JSONResponse:
    logger.error("%s dependency failed on %s %s: %s", exc.dependency, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": exc.message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(DependencyError, dependency_exception_handler)
