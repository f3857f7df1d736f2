"""
CLI Commands for GrowthKit.

Usage:
    flask invitations run-batch --app-id 1           # Invite the next waitlist entries
    flask invitations run-batch --dry-run            # Preview for every auto-invite app
    flask invitations generate --app-id 1 --email a@b.co
    flask ledger verify --app-id 1                   # Check balances against the ledger
"""
from .invitations import init_app as init_invitation_commands
from .ledger import init_app as init_ledger_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_invitation_commands(app)
    init_ledger_commands(app)
