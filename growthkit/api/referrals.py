"""
Referral API endpoints.

Shareable referral codes are exchanged for short-lived signed claims, which
the client then passes to POST /api/v1/identity.
"""
from flask import Blueprint, request, jsonify, g
from . import json_body
from ..middleware import require_app_key
from ..services.identity_service import identity_service
from ..services.policy import AppPolicy
from ..services.referral_service import referral_service
from ..utils.errors import not_found, ErrorCode

referrals_bp = Blueprint('referrals', __name__)


@referrals_bp.route('/exchange', methods=['POST'])
@require_app_key
def exchange_referral_code():
    """
    Exchange a referral code for a signed claim.

    Request body:
    {
        "referralCode": "GROWTH-1A2B3C"
    }
    """
    data = json_body()
    policy = AppPolicy.from_app(g.growth_app)

    result = referral_service.exchange_code(policy, data.get('referralCode'))

    return jsonify({
        'claim': result['claim'],
        'type': result['type'],
        'expiresIn': result['expires_in'],
    })


@referrals_bp.route('/stats', methods=['GET'])
@require_app_key
def referral_stats():
    """Referral counts for the identity behind a fingerprint."""
    identity = identity_service.find(g.app_id, request.args.get('fingerprint', ''))
    if not identity:
        return not_found('Identity not found', ErrorCode.IDENTITY_NOT_FOUND)

    return jsonify(referral_service.get_stats(AppPolicy.from_app(g.growth_app), identity))
