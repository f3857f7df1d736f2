"""
Admin API endpoints.

Service-to-service calls from the admin dashboard and external schedulers.
All routes require ``Authorization: Bearer <SERVICE_KEY>``.
"""
from flask import Blueprint, jsonify
from . import json_body
from ..middleware import require_service_key
from ..models.app import GrowthApp
from ..services.invitation_service import invitation_service
from ..services.policy import AppPolicy
from ..utils.errors import bad_request
from ..utils.exceptions import AppNotFoundError

admin_bp = Blueprint('admin', __name__)


def _load_app(data) -> GrowthApp:
    app_id = data.get('appId')
    growth_app = GrowthApp.query.get(app_id) if isinstance(app_id, int) else None
    if not growth_app:
        raise AppNotFoundError(app_id)
    return growth_app


@admin_bp.route('/invitations/generate', methods=['POST'])
@require_service_key
def generate_invitation():
    """
    Issue an invitation code for an email right away.

    Request body:
    {
        "appId": 1,
        "email": "ada@example.com",
        "expiresInDays": 14             // optional, defaults to the app's policy
    }
    """
    data = json_body()
    growth_app = _load_app(data)

    expires_in_days = data.get('expiresInDays')
    if expires_in_days is not None and not isinstance(expires_in_days, int):
        return bad_request('expiresInDays must be an integer')

    entry = invitation_service.issue_invitation(
        AppPolicy.from_app(growth_app),
        data.get('email'),
        expires_in_days=expires_in_days,
    )

    return jsonify({
        'invitationCode': entry.invitation_code,
        'expiresAt': entry.code_expires_at.isoformat() if entry.code_expires_at else None,
        'entry': entry.to_dict(),
    }), 201


@admin_bp.route('/invitations/batch', methods=['POST'])
@require_service_key
def run_invitation_batch():
    """
    Run the batch inviter for one app.

    Request body:
    {
        "appId": 1,
        "limit": 25,                    // optional, defaults to the daily quota
        "dryRun": false
    }
    """
    data = json_body()
    growth_app = _load_app(data)

    limit = data.get('limit')
    if limit is not None and not isinstance(limit, int):
        return bad_request('limit must be an integer')

    result = invitation_service.run_batch(growth_app, limit=limit, dry_run=bool(data.get('dryRun')))

    return jsonify(result)
