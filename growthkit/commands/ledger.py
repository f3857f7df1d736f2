"""
CLI Commands for the credit ledger.
"""

import click
from flask.cli import with_appcontext
from ..models.identity import Identity
from ..services.ledger_service import ledger_service


@click.group('ledger')
def ledger_cli():
    """Credit ledger commands."""
    pass


@ledger_cli.command('verify')
@click.option('--app-id', type=int, required=True, help='App ID')
@with_appcontext
def verify(app_id):
    """
    Check every identity's materialized balance against its ledger entries.

    Exits non-zero if any balance has drifted.
    """
    identities = Identity.query.filter_by(app_id=app_id).order_by(Identity.id).all()

    mismatches = []
    for identity in identities:
        result = ledger_service.verify_balance(identity.id)
        if not result['consistent']:
            mismatches.append(result)

    click.echo(f"Checked {len(identities)} identities")

    if mismatches:
        click.echo(f"MISMATCHES: {len(mismatches)}")
        for result in mismatches[:20]:
            click.echo(
                f"  - Identity {result['identity_id']}: "
                f"balance {result['balance']}, ledger {result['ledger_sum']}"
            )
        raise SystemExit(1)

    click.echo("All balances match the ledger")


def init_app(app):
    """Register ledger commands with Flask app."""
    app.cli.add_command(ledger_cli)
