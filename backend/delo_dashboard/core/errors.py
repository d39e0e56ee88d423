"""Error taxonomy and FastAPI exception handlers."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from delo_dashboard.core.logging import get_logger

logger = get_logger(__name__)

LOGIN_PATH = "/login"
ACCESS_DENIED_PATH = "/dashboard/access-denied"


class DashboardError(Exception):
    """Base class for errors surfaced to dashboard clients."""

    status_code = 500
    redirect: str | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.redirect:
            payload["redirect"] = self.redirect
        return payload


class AuthenticationError(DashboardError):
    status_code = 401
    redirect = LOGIN_PATH


class AuthorizationError(DashboardError):
    status_code = 403
    redirect = ACCESS_DENIED_PATH


class ValidationError(DashboardError):
    status_code = 400


class NotFoundError(DashboardError):
    status_code = 404


class ConflictError(DashboardError):
    """Raised when a mutation would break an access-control invariant."""

    status_code = 409


class QueryError(DashboardError):
    """A read or mutation against the database failed."""

    status_code = 500


async def _handle_dashboard_error(request: Request, exc: DashboardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "Request %s %s rejected (%s): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DashboardError, _handle_dashboard_error)


__all__ = [
    "DashboardError",
    "AuthenticationError",
    "AuthorizationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "QueryError",
    "install_error_handlers",
    "LOGIN_PATH",
    "ACCESS_DENIED_PATH",
]
