"""Exceptions raised by the content services."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for failures the web layer translates into responses."""


class NotFoundError(ServiceError, LookupError):
    """Raised when a referenced record does not exist."""


class ValidationFailure(ServiceError, ValueError):
    """Raised when request data is incomplete or references unknown values."""


class PermissionDenied(ServiceError):
    """Raised when an operation is not allowed for the current account."""


__all__ = ["NotFoundError", "PermissionDenied", "ServiceError", "ValidationFailure"]
