"""
Request authentication.

Client apps authenticate with their API key in the ``X-App-Key`` header.
Admin endpoints require the service key as a Bearer token.
"""
import hmac
from functools import wraps
from flask import request, g, current_app
from ..models.app import GrowthApp
from ..utils.errors import unauthorized, ErrorCode


def get_app_key_from_request() -> str | None:
    key = request.headers.get('X-App-Key')
    if key:
        return key.strip()
    return None


def require_app_key(f):
    """
    Decorator that resolves the calling app from its API key.

    Sets g.growth_app and g.app_id if authenticated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = get_app_key_from_request()
        if not api_key:
            return unauthorized('X-App-Key header is required')

        growth_app = GrowthApp.query.filter_by(api_key=api_key).first()
        if not growth_app or not growth_app.is_active:
            return unauthorized('Invalid or inactive app key', ErrorCode.INVALID_APP_KEY)

        g.growth_app = growth_app
        g.app_id = growth_app.id
        return f(*args, **kwargs)

    return decorated_function


def require_service_key(f):
    """Decorator for admin endpoints: ``Authorization: Bearer <SERVICE_KEY>``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('SERVICE_KEY')
        auth_header = request.headers.get('Authorization', '')
        provided = auth_header[7:] if auth_header.startswith('Bearer ') else ''

        if not expected or not provided or not hmac.compare_digest(provided, expected):
            return unauthorized('Valid service key required')

        return f(*args, **kwargs)

    return decorated_function


def get_request_origin() -> dict:
    """Client IP and user agent for the audit log."""
    forwarded = request.headers.get('X-Forwarded-For', '')
    ip_address = forwarded.split(',')[0].strip() if forwarded else request.remote_addr
    return {
        'ip_address': ip_address,
        'user_agent': request.headers.get('User-Agent'),
    }
