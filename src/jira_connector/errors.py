"""Error taxonomy shared by the Jira clients, resource builders and host adapters."""

from __future__ import annotations

from typing import Optional, Type

import requests


class ConnectorError(Exception):
    code = "unknown"
    retryable = False

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DeadlineExceededError(ConnectorError):
    code = "deadline_exceeded"
    retryable = True


class UnavailableError(ConnectorError):
    code = "unavailable"
    retryable = True


class UnauthenticatedError(ConnectorError):
    code = "unauthenticated"


class NotFoundError(ConnectorError):
    code = "not_found"


class PermissionDeniedError(ConnectorError):
    code = "permission_denied"


class UnimplementedError(ConnectorError):
    code = "unimplemented"


class ValidationError(ConnectorError):
    code = "invalid_argument"


class CursorDecodeError(ValidationError):
    """Raised when a page token cannot be decoded; callers must not restart from page one."""


STATUS_ERRORS = {
    401: UnauthenticatedError,
    403: PermissionDeniedError,
    404: NotFoundError,
    429: UnavailableError,
    501: UnimplementedError,
    503: UnavailableError,
}


def error_class_for_status(status_code: Optional[int]) -> Type[ConnectorError]:
    if status_code is None:
        return ConnectorError
    return STATUS_ERRORS.get(status_code, ConnectorError)


def api_error(status_code: int, message: str, body: str = "") -> ConnectorError:
    """Build the classified error for a non-2xx HTTP response."""
    return error_class_for_status(status_code)(message, status_code=status_code, body=body)


def classify_error(exc: BaseException) -> Type[ConnectorError]:
    if isinstance(exc, requests.Timeout):
        return DeadlineExceededError
    if isinstance(exc, requests.RequestException):
        return UnavailableError
    if isinstance(exc, ConnectorError):
        return type(exc)
    return ConnectorError


def wrap_error(exc: BaseException, message: str) -> ConnectorError:
    """Prefix ``exc`` with ``message`` while keeping its status classification."""
    error_cls = classify_error(exc)
    wrapped = error_cls(
        f"jira-connector: {message}: {exc}",
        status_code=getattr(exc, "status_code", None),
        body=getattr(exc, "body", "") or "",
    )
    wrapped.__cause__ = exc
    return wrapped


__all__ = [
    "ConnectorError",
    "CursorDecodeError",
    "DeadlineExceededError",
    "NotFoundError",
    "PermissionDeniedError",
    "UnauthenticatedError",
    "UnavailableError",
    "UnimplementedError",
    "ValidationError",
    "api_error",
    "classify_error",
    "error_class_for_status",
    "wrap_error",
]
