"""
Profile claim endpoints.

Identities earn credits for sharing a name and an email, and again for
confirming the email through the emailed link.
"""
from flask import Blueprint, jsonify, g
from . import json_body
from ..middleware import require_app_key, get_request_origin
from ..services.identity_service import identity_service
from ..services.policy import AppPolicy
from ..services.profile_service import profile_service

profile_bp = Blueprint('profile', __name__)


@profile_bp.route('/claim/name', methods=['POST'])
@require_app_key
def claim_name():
    """
    Request body:
    {
        "fingerprint": "fp_abc123",
        "name": "Ada"
    }
    """
    data = json_body()
    identity = identity_service.get_by_fingerprint(g.app_id, data.get('fingerprint'))

    result = profile_service.claim_name(
        AppPolicy.from_app(g.growth_app), identity, data.get('name'), **get_request_origin()
    )

    return jsonify({
        'claimed': result['claimed'],
        'name': result.get('name'),
        'reason': result.get('reason'),
        'creditsAwarded': result['credits_awarded'],
        'totalCredits': identity.credit_balance,
    })


@profile_bp.route('/claim/email', methods=['POST'])
@require_app_key
def claim_email():
    """
    Attach an email and send a verification link to it.

    Request body:
    {
        "fingerprint": "fp_abc123",
        "email": "ada@example.com"
    }
    """
    data = json_body()
    identity = identity_service.get_by_fingerprint(g.app_id, data.get('fingerprint'))

    result = profile_service.claim_email(
        AppPolicy.from_app(g.growth_app), identity, data.get('email'), **get_request_origin()
    )

    return jsonify({
        'claimed': result['claimed'],
        'reason': result.get('reason'),
        'verificationSent': result.get('verification_sent', False),
        'creditsAwarded': result['credits_awarded'],
        'totalCredits': identity.credit_balance,
    })


@profile_bp.route('/verify/email', methods=['POST'])
@require_app_key
def verify_email():
    """
    Confirm an email with the token from the verification link.

    Request body:
    {
        "token": "..."
    }
    """
    data = json_body()

    result = profile_service.verify_email(
        AppPolicy.from_app(g.growth_app), data.get('token'), **get_request_origin()
    )

    return jsonify({
        'verified': result['verified'],
        'reason': result.get('reason'),
        'creditsAwarded': result['credits_awarded'],
    })
