"""
CLI Commands for waitlist invitations.

The batch can run from cron instead of the in-process scheduler:

# Daily invitation batch (10 AM UTC)
0 10 * * * cd /app && flask invitations run-batch
"""

import click
from flask.cli import with_appcontext
from ..models.app import GrowthApp
from ..services.invitation_service import invitation_service
from ..services.policy import AppPolicy
from ..utils.exceptions import GrowthKitError


@click.group('invitations')
def invitations_cli():
    """Waitlist invitation commands."""
    pass


@invitations_cli.command('run-batch')
@click.option('--app-id', type=int, help='Specific app ID (or all auto-invite apps if not specified)')
@click.option('--limit', type=int, help='Override the daily invite quota')
@click.option('--dry-run', is_flag=True, help='Preview without sending invitations')
@with_appcontext
def run_batch(app_id, limit, dry_run):
    """
    Invite the next WAITING entries in line.
    """
    if app_id:
        apps = [GrowthApp.query.get(app_id)]
        if not apps[0]:
            click.echo(f"App {app_id} not found")
            return
    else:
        apps = GrowthApp.query.filter_by(is_active=True, auto_invite_enabled=True).all()

    total_invited = 0
    total_failed = 0

    for growth_app in apps:
        click.echo(f"\n{'[DRY RUN] ' if dry_run else ''}Processing app: {growth_app.name}")

        result = invitation_service.run_batch(growth_app, limit=limit, dry_run=dry_run)

        click.echo(f"  Processed: {result['processed']} entries")
        click.echo(f"  Invited: {result['invited']}")

        if result['errors']:
            click.echo(f"  Failed: {result['failed']}")
            for error in result['errors'][:5]:
                click.echo(f"    - {error['email']}: {error['error']}")

        total_invited += result['invited']
        total_failed += result['failed']

    click.echo(f"\n{'[DRY RUN] ' if dry_run else ''}TOTAL: {total_invited} invited, {total_failed} failed")


@invitations_cli.command('generate')
@click.option('--app-id', type=int, required=True, help='App ID')
@click.option('--email', required=True, help='Email to invite')
@click.option('--expires-in-days', type=int, help='Code lifetime (defaults to the app policy)')
@with_appcontext
def generate(app_id, email, expires_in_days):
    """Issue an invitation code for one email."""
    growth_app = GrowthApp.query.get(app_id)
    if not growth_app:
        click.echo(f"App {app_id} not found")
        return

    try:
        entry = invitation_service.issue_invitation(
            AppPolicy.from_app(growth_app), email, expires_in_days=expires_in_days
        )
    except GrowthKitError as e:
        click.echo(f"Error: {e.message}")
        return

    expires = entry.code_expires_at.strftime('%Y-%m-%d %H:%M UTC') if entry.code_expires_at else 'never'
    click.echo(f"Invitation code for {entry.email}: {entry.invitation_code} (expires {expires})")


def init_app(app):
    """Register invitation commands with Flask app."""
    app.cli.add_command(invitations_cli)
