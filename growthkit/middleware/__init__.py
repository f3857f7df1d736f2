"""
Middleware package for GrowthKit.
"""
from .app_auth import require_app_key, require_service_key, get_request_origin
