"""
JSON error responses for the GrowthKit API.

Every error body has the same shape:

    {"error": {"message": "...", "code": "IDENTITY_NOT_FOUND"}}

Business errors raised as ``GrowthKitError`` are turned into this shape by the
app's error handler; the helpers below are for routes and decorators that
answer directly.
"""
import logging
from enum import Enum
from typing import Optional, Union

from flask import jsonify

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Codes returned by routes that build their own error response."""

    # 401
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_APP_KEY = "INVALID_APP_KEY"

    # 400
    INVALID_REQUEST = "INVALID_REQUEST"

    # 404
    NOT_FOUND = "NOT_FOUND"
    IDENTITY_NOT_FOUND = "IDENTITY_NOT_FOUND"

    # 500
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: Union[ErrorCode, str] = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Build a ``(response, status)`` pair in the standard error shape.

    ``code`` may be an ErrorCode or the string code carried by a
    GrowthKitError. ``details`` only goes to the log.
    """
    if log_error:
        level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(level, f"API Error [{code}]: {message}", extra={"details": details})

    return jsonify({
        "error": {
            "message": message,
            "code": code.value if isinstance(code, ErrorCode) else code
        }
    }), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    return error_response(message, code, 400, log_error=False)


def unauthorized(message: str = "Authentication required", code: ErrorCode = ErrorCode.AUTH_REQUIRED) -> tuple:
    return error_response(message, code, 401, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred", details: Optional[dict] = None) -> tuple:
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True, details=details)
