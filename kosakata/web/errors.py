"""JSON error responses for the HTTP API."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..services.errors import NotFoundError, PermissionDenied, ValidationFailure
from ..services.uploads import UploadRejected

LOGGER = logging.getLogger(__name__)


class ApiError(Exception):
    """An error carrying the HTTP status and the ``{message, error}`` body."""

    def __init__(self, status_code: int, message: str, error: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.error is not None:
            body["error"] = self.error
        return body


def translate_error(error: Exception, message: str) -> ApiError:
    """Map a service exception onto the status code the API reports for it.

    Missing records are 404 and refused credentials 403; invalid input,
    rejected uploads and storage failures are reported as 500 with *message*.
    """

    if isinstance(error, ApiError):
        return error
    if isinstance(error, NotFoundError):
        return ApiError(404, str(error))
    if isinstance(error, PermissionDenied):
        return ApiError(403, str(error))
    if isinstance(error, (ValidationFailure, UploadRejected)):
        return ApiError(500, message, str(error))
    return ApiError(500, message, f"{error.__class__.__name__}: {error}")


def install_error_handlers(app: FastAPI, *, production: bool) -> None:
    @app.exception_handler(ApiError)
    async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            LOGGER.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error during %s %s", request.method, request.url.path)
        stack = None
        if not production:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content={"message": str(exc) or "Internal server error", "stack": stack})


__all__ = ["ApiError", "install_error_handlers", "translate_error"]
