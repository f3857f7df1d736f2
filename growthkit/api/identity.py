"""
Identity API endpoints.

The main entry point for client apps: resolve the visitor's identity, apply
any claim it carries and return its credits and admission state.
"""
from flask import Blueprint, request, jsonify, g
from . import json_body
from ..middleware import require_app_key, get_request_origin
from ..services.growth_service import growth_service
from ..services.identity_service import identity_service
from ..services.ledger_service import ledger_service
from ..utils.errors import not_found, ErrorCode

identity_bp = Blueprint('identity', __name__)


@identity_bp.route('/identity', methods=['POST'])
@require_app_key
def resolve_identity():
    """
    Resolve or create the identity for a fingerprint.

    Request body:
    {
        "fingerprint": "fp_abc123",
        "claim": "INV-7KQ2MX"          // optional: invitation code or referral token
    }

    Invalid or already used claims do not fail the request; see the
    "claim" section of the response for what happened.
    """
    data = json_body()

    result = growth_service.resolve_identity(
        g.growth_app,
        data.get('fingerprint'),
        claim=data.get('claim'),
        **get_request_origin()
    )

    return jsonify(result.to_dict())


@identity_bp.route('/credits/history', methods=['GET'])
@require_app_key
def credit_history():
    """Ledger entries for an identity, newest first."""
    fingerprint = request.args.get('fingerprint', '')
    limit = min(request.args.get('limit', 50, type=int), 200)
    offset = request.args.get('offset', 0, type=int)

    identity = identity_service.find(g.app_id, fingerprint)
    if not identity:
        return not_found('Identity not found', ErrorCode.IDENTITY_NOT_FOUND)

    entries = ledger_service.get_history(identity.id, limit=limit, offset=offset)

    return jsonify({
        'balance': identity.credit_balance,
        'entries': [entry.to_dict() for entry in entries],
    })


@identity_bp.route('/complete', methods=['POST'])
@require_app_key
def complete_action():
    """
    Spend credits on one use of an action.

    Request body:
    {
        "fingerprint": "fp_abc123",
        "action": "generate",           // optional, defaults to "default"
        "creditsRequired": 3            // optional, used when the app's policy does not price the action
    }

    Responds 400 INSUFFICIENT_CREDITS when the balance does not cover the cost.
    """
    data = json_body()

    identity = identity_service.get_by_fingerprint(g.app_id, data.get('fingerprint'))

    result = growth_service.complete_action(
        g.growth_app,
        identity,
        action=data.get('action', 'default'),
        credits_requested=data.get('creditsRequired'),
        **get_request_origin()
    )

    return jsonify(result)
