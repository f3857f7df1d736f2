"""
API blueprints for GrowthKit.
"""
from flask import request

from ..utils.exceptions import ValidationError


def json_body() -> dict:
    """
    The request's JSON object. A missing or unparseable body reads as empty;
    any other JSON value (list, string, number) is rejected.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data
