"""API error types for the CDN Media client.

Every failure past the first network call is raised as an ApiError
subclass carrying the service's message and an http-like status code.
"""

from typing import Any, Optional


TIMEOUT_HTTP_CODE = 499


class ApiError(Exception):
    """Base class for errors reported by (or while talking to) the service.

    Attributes:
        message: Human readable message
        http_code: HTTP status code, or a sentinel for client-side failures
        name: Error kind as reported to callers
    """
    name = "Error"

    def __init__(self, message: str, http_code: Optional[int] = None, name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.http_code = http_code
        if name is not None:
            self.name = name

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "http_code": self.http_code, "name": self.name}


class ServerError(ApiError):
    """The service answered with an error payload or an unreadable body."""


class UnexpectedResponse(ApiError):
    """The service answered with a status code outside the recognized set."""
    name = "UnexpectedResponse"


class RequestTimeoutError(ApiError):
    """A request exceeded its deadline and was aborted."""
    name = "TimeoutError"

    def __init__(self, message: str = "Request Timeout"):
        super().__init__(message, http_code=TIMEOUT_HTTP_CODE)
