"""
Waitlist API endpoints.
"""
from flask import Blueprint, request, jsonify, g
from ..extensions import db
from . import json_body
from ..middleware import require_app_key, get_request_origin
from ..services.identity_service import identity_service
from ..services.invitation_service import invitation_service
from ..services.policy import AppPolicy
from ..services.waitlist_service import waitlist_service
from ..utils.errors import not_found, ErrorCode

waitlist_bp = Blueprint('waitlist', __name__)


@waitlist_bp.route('', methods=['POST'])
@require_app_key
def join_waitlist():
    """
    Join the waitlist.

    Request body:
    {
        "fingerprint": "fp_abc123",
        "email": "ada@example.com",
        "name": "Ada"                   // optional
    }
    """
    data = json_body()
    policy = AppPolicy.from_app(g.growth_app)
    origin = get_request_origin()

    identity, _ = identity_service.resolve_or_create(g.app_id, data.get('fingerprint'), **origin)
    result = waitlist_service.join(
        policy,
        identity,
        data.get('email'),
        name=data.get('name'),
        metadata=data.get('metadata') if isinstance(data.get('metadata'), dict) else None,
        **origin
    )

    entry = result['entry']
    if not result['already_joined']:
        waitlist_service.send_confirmation(policy, entry)

    return jsonify({
        'status': entry.status,
        'position': entry.position,
        'alreadyJoined': result['already_joined'],
        'creditsAwarded': result['credits_awarded'],
    }), 200 if result['already_joined'] else 201


@waitlist_bp.route('/status', methods=['GET'])
@require_app_key
def waitlist_status():
    """Admission state and entitlement for a fingerprint."""
    identity = identity_service.find(g.app_id, request.args.get('fingerprint', ''))
    if not identity:
        return not_found('Identity not found', ErrorCode.IDENTITY_NOT_FOUND)

    policy = AppPolicy.from_app(g.growth_app)
    state = waitlist_service.get_state(g.app_id, identity)
    entitlement = waitlist_service.compute_entitlement(policy, identity, entry=state.entry)

    return jsonify({
        'status': state.status,
        'position': state.position,
        'entitled': entitlement.entitled,
        'grandfathered': entitlement.grandfathered,
        'requiresWaitlist': entitlement.requires_waitlist,
    })


@waitlist_bp.route('/redeem', methods=['POST'])
@require_app_key
def redeem_invitation():
    """
    Redeem an invitation code.

    Request body:
    {
        "fingerprint": "fp_abc123",
        "invitationCode": "INV-7KQ2MX"
    }
    """
    data = json_body()
    policy = AppPolicy.from_app(g.growth_app)
    origin = get_request_origin()

    try:
        identity, _ = identity_service.resolve_or_create(g.app_id, data.get('fingerprint'), **origin)
        outcome = invitation_service.redeem(policy, identity, data.get('invitationCode'), **origin)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    response = outcome.to_dict()
    response['balance'] = identity.credit_balance
    return jsonify(response)
