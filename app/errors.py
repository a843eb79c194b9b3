"""
Typed error taxonomy raised by the domain services.

Every error carries a kind, an HTTP status, a human readable message and a
dict of structured details (entity ids, competing intervals, balances) that
is merged into the JSON body rendered by the exception handlers in main.py.
"""

import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ClinicError(Exception):
    kind = "Error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.message, **self.details}


class NotFound(ClinicError):
    """Referenced entity is missing or soft-deleted"""

    kind = "NotFound"
    status_code = 404


class ValidationFailed(ClinicError):
    kind = "ValidationFailed"
    status_code = 400


class Conflict(ClinicError):
    """Scheduling overlap, duplicate unique key or balance overrun"""

    kind = "Conflict"
    status_code = 409


class ForbiddenTransition(ClinicError):
    kind = "ForbiddenTransition"
    status_code = 400


class Forbidden(ClinicError):
    kind = "Forbidden"
    status_code = 403


class Unauthorized(ClinicError):
    kind = "Unauthorized"
    status_code = 401


class AccountLocked(ClinicError):
    kind = "AccountLocked"
    status_code = 423


class RateLimited(ClinicError):
    kind = "RateLimited"
    status_code = 429


async def clinic_error_handler(request: Request, exc: ClinicError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.kind}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} - {exc.kind}: {exc.message}")
    headers = None
    if isinstance(exc, Unauthorized):
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.details.get("retryAfter", 0))}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Render malformed request bodies in the same envelope as domain errors.
    Missing Authorization headers surface as 401 rather than 422.
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={"error": Unauthorized.kind, "detail": "Not authenticated"},
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"error": ValidationFailed.kind, "detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ctx may hold exception instances that are not JSON serialisable
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
