"""Error taxonomy shared by the resource API, its clients and the dashboard."""

from __future__ import annotations

from fastapi import status


class UserDeskError(Exception):
    """Base class for failures that are safe to report to a caller."""

    code = "INTERNAL"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidArgument(UserDeskError):
    code = "INVALID_ARGUMENT"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Name and email are required"


class NotFound(UserDeskError):
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "User not found"


class MethodNotAllowed(UserDeskError):
    code = "METHOD_NOT_ALLOWED"
    http_status = status.HTTP_405_METHOD_NOT_ALLOWED
    default_message = "Method not allowed"

    def __init__(self, allowed: str | None = None, message: str | None = None) -> None:
        self.allowed = allowed
        super().__init__(message)


class Internal(UserDeskError):
    pass


class ServiceUnavailable(UserDeskError):
    # reported as a plain 500 on the HTTP surface, like any other store failure
    code = "SERVICE_UNAVAILABLE"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Service unavailable"


def error_for_status(status_code: int, message: str | None = None) -> UserDeskError:
    """Return the taxonomy entry matching an HTTP status code."""

    if status_code == status.HTTP_400_BAD_REQUEST:
        return InvalidArgument(message)
    if status_code == status.HTTP_404_NOT_FOUND:
        return NotFound(message)
    if status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return MethodNotAllowed(message=message)
    if status_code in (
        status.HTTP_502_BAD_GATEWAY,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        status.HTTP_504_GATEWAY_TIMEOUT,
    ):
        return ServiceUnavailable(message)
    return Internal(message)


__all__ = [
    "UserDeskError",
    "InvalidArgument",
    "NotFound",
    "MethodNotAllowed",
    "Internal",
    "ServiceUnavailable",
    "error_for_status",
]
