"""
core/errors.py -- Closed error taxonomy shared by every layer.

Every failure the service reports to a client is one ErrorKind. Each kind maps
to exactly one (http_status, code, message) triple, so the same failure always
produces the same response body no matter where it was raised -- a store, a
dependency, the request gate, or a route handler.

Raise AppError(kind) from any layer; api/main.py registers the single handler
that renders it. The gate renders kinds itself because it runs before FastAPI.

Layer rule: core/ is the kernel. No imports from api/, auth/, or client/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class ErrorSpec:
    status: int
    message: str


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    MISSING_TOKEN = "MISSING_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    REFRESH_TOKEN_MISSING = "REFRESH_TOKEN_MISSING"
    REFRESH_TOKEN_INVALID = "REFRESH_TOKEN_INVALID"
    ADMIN_ACCESS_REQUIRED = "ADMIN_ACCESS_REQUIRED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
    UNSAFE_INPUT = "UNSAFE_INPUT"
    LAST_ADMIN = "LAST_ADMIN"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def spec(self) -> ErrorSpec:
        return _SPECS[self]

    @property
    def status(self) -> int:
        return _SPECS[self].status

    @property
    def message(self) -> str:
        return _SPECS[self].message


_SPECS: dict[ErrorKind, ErrorSpec] = {
    ErrorKind.VALIDATION_ERROR: ErrorSpec(400, "Validation failed"),
    # One message for unknown email and wrong password -- no user enumeration.
    ErrorKind.INVALID_CREDENTIALS: ErrorSpec(401, "Invalid email or password"),
    ErrorKind.MISSING_TOKEN: ErrorSpec(401, "Unauthorized: Missing authentication token"),
    # Expired and forged tokens share this kind on purpose.
    ErrorKind.INVALID_TOKEN: ErrorSpec(401, "Unauthorized: Invalid or expired token"),
    ErrorKind.REFRESH_TOKEN_MISSING: ErrorSpec(401, "Refresh token not found. Please log in again."),
    ErrorKind.REFRESH_TOKEN_INVALID: ErrorSpec(401, "Refresh token is invalid or expired"),
    ErrorKind.ADMIN_ACCESS_REQUIRED: ErrorSpec(403, "Forbidden: Admin access required"),
    ErrorKind.PERMISSION_DENIED: ErrorSpec(403, "Forbidden: Insufficient permissions"),
    ErrorKind.USER_NOT_FOUND: ErrorSpec(404, "User not found"),
    ErrorKind.NOT_FOUND: ErrorSpec(404, "Resource not found"),
    ErrorKind.EMAIL_ALREADY_EXISTS: ErrorSpec(409, "User with this email already exists"),
    ErrorKind.UNSAFE_INPUT: ErrorSpec(400, "Input contains potentially malicious content"),
    ErrorKind.LAST_ADMIN: ErrorSpec(400, "Cannot remove the admin role from the last admin account"),
    ErrorKind.RATE_LIMITED: ErrorSpec(429, "Too many requests"),
    ErrorKind.INTERNAL_ERROR: ErrorSpec(500, "Something went wrong. Please try again later."),
}


class AppError(Exception):
    """An expected failure carrying one ErrorKind.

    message overrides the kind's default text only where the default is too
    generic (e.g. NOT_FOUND for a specific resource). Security-relevant kinds
    (credentials, tokens) must always use their default message.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        details: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        self.kind = kind
        self.message = message or kind.message
        self.details = details
        super().__init__(self.message)

    @property
    def status(self) -> int:
        return self.kind.status


def error_body(kind: ErrorKind, message: Optional[str] = None, details: Optional[list] = None) -> dict:
    """Return the JSON error envelope for a kind.

    The body is fully determined by its arguments (no timestamps or request
    ids), so two failures of the same kind are byte-identical.
    """
    error: dict[str, Any] = {"code": kind.value}
    if details:
        error["details"] = details
    return {"success": False, "message": message or kind.message, "error": error}
