"""
Centralised application errors.

Every error raised by services is an AppException tagged with an ErrorKind.
The kind alone decides the HTTP status through STATUS_BY_KIND, so a throw site
cannot invent an ad hoc status code. The subclasses below only pin a kind and
a default message for the common cases.
"""
from enum import Enum
from typing import Optional

from fastapi import HTTPException, status


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppException(HTTPException):
    def __init__(self, kind: ErrorKind, detail: str, headers: Optional[dict] = None):
        super().__init__(status_code=STATUS_BY_KIND[kind], detail=detail, headers=headers)
        self.kind = kind


class BadRequestException(AppException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(ErrorKind.BAD_REQUEST, detail)


class CredentialsException(AppException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            ErrorKind.UNAUTHORIZED,
            detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundException(AppException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(ErrorKind.NOT_FOUND, f"{resource} not found")


class ConflictException(AppException):
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(ErrorKind.CONFLICT, detail)


class OTPRateLimitException(AppException):
    def __init__(self):
        super().__init__(
            ErrorKind.RATE_LIMITED,
            "You can only request a new OTP once per minute",
        )
