"""
Utility modules for GrowthKit.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    unauthorized,
    not_found,
    internal_error
)
from .exceptions import (
    GrowthKitError,
    NotFoundError,
    IdentityNotFoundError,
    AppNotFoundError,
    ValidationError,
    InvalidStatusTransitionError,
    CollisionExhaustionError,
    RequestTimeoutError,
    ConfigurationError,
    InsufficientCreditsError
)
