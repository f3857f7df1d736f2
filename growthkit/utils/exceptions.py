"""
Custom exceptions for GrowthKit business logic.

These exceptions provide more specific error handling than generic Exception,
allowing for better error messages and appropriate HTTP status codes.

Ignored referral or invitation claims are NOT exceptions: the claim resolver
reports them as a ClaimOutcome so the surrounding request still succeeds.
"""


class GrowthKitError(Exception):
    """Base exception for all GrowthKit business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: str = "GROWTHKIT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(GrowthKitError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class IdentityNotFoundError(NotFoundError):
    """Identity not found."""

    def __init__(self, identifier=None):
        super().__init__("Identity", identifier)


class AppNotFoundError(NotFoundError):
    """Growth app not found."""

    def __init__(self, identifier=None):
        super().__init__("App", identifier)


class ValidationError(GrowthKitError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InvalidStatusTransitionError(GrowthKitError):
    """Invalid status transition for a resource."""

    status_code = 409

    def __init__(self, resource: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        message = f"Cannot change {resource} status from '{from_status}' to '{to_status}'"
        super().__init__(message, "INVALID_STATUS_TRANSITION")


class CollisionExhaustionError(GrowthKitError):
    """A unique code could not be generated within the retry bound."""

    status_code = 503

    def __init__(self, kind: str, attempts: int):
        self.kind = kind
        self.attempts = attempts
        message = f"Could not generate a unique {kind} after {attempts} attempts"
        super().__init__(message, "CODE_COLLISION_EXHAUSTED")


class RequestTimeoutError(GrowthKitError):
    """The request deadline elapsed before the work could be committed."""

    status_code = 503

    def __init__(self, stage: str, timeout: float):
        self.stage = stage
        self.timeout = timeout
        message = f"Request exceeded {timeout:g}s deadline during {stage}"
        super().__init__(message, "REQUEST_TIMEOUT")


class ConfigurationError(GrowthKitError):
    """Application configuration error."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")


class InsufficientCreditsError(GrowthKitError):
    """Balance too low for the credits an action costs."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        message = f"Insufficient credits. Required: {required}, available: {available}"
        super().__init__(message, "INSUFFICIENT_CREDITS")
