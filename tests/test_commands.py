"""
Tests for CLI commands and the scheduled invitation batch.
"""
from unittest.mock import patch

from growthkit.extensions import db
from growthkit.models import Identity, WaitlistEntry, WaitlistStatus
from growthkit.services.ledger_service import ledger_service
from growthkit.utils import scheduler


class TestInvitationCommands:

    def test_generate(self, app, sample_app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            'invitations', 'generate', '--app-id', str(sample_app.id), '--email', 'vip@example.com'
        ])

        assert result.exit_code == 0
        assert 'Invitation code for vip@example.com: INV-' in result.output
        assert WaitlistEntry.query.one().status == WaitlistStatus.INVITED.value

    def test_generate_unknown_app(self, app):
        result = app.test_cli_runner().invoke(args=[
            'invitations', 'generate', '--app-id', '999', '--email', 'vip@example.com'
        ])
        assert 'App 999 not found' in result.output

    def test_generate_bad_email(self, app, sample_app):
        result = app.test_cli_runner().invoke(args=[
            'invitations', 'generate', '--app-id', str(sample_app.id), '--email', 'nope'
        ])
        assert 'Error:' in result.output

    def test_run_batch_dry_run(self, app, sample_app):
        db.session.add(WaitlistEntry(app_id=sample_app.id, email='a@example.com', position=1))
        db.session.commit()

        result = app.test_cli_runner().invoke(args=[
            'invitations', 'run-batch', '--app-id', str(sample_app.id), '--dry-run'
        ])

        assert result.exit_code == 0
        assert 'Processed: 1 entries' in result.output
        assert '[DRY RUN] TOTAL: 0 invited, 0 failed' in result.output


class TestLedgerCommands:

    def test_verify_consistent(self, app, sample_app, sample_identity):
        ledger_service.append_credit(sample_identity.id, 5, 'starting_grant')
        db.session.commit()

        result = app.test_cli_runner().invoke(args=['ledger', 'verify', '--app-id', str(sample_app.id)])

        assert result.exit_code == 0
        assert 'All balances match the ledger' in result.output

    def test_verify_detects_drift(self, app, sample_app, sample_identity):
        Identity.query.filter_by(id=sample_identity.id).update({Identity.credit_balance: 99})
        db.session.commit()

        result = app.test_cli_runner().invoke(args=['ledger', 'verify', '--app-id', str(sample_app.id)])

        assert result.exit_code == 1
        assert 'balance 99, ledger 0' in result.output


class TestScheduler:

    def test_disabled_in_testing(self, app):
        assert scheduler.get_scheduler_status() == {'running': False, 'jobs': []}

    def test_invitation_batch_job(self, app):
        with patch('growthkit.services.invitation_service.invitation_service.run_all') as run_all:
            run_all.return_value = {'apps': 1, 'invited': 2, 'failed': 0, 'results': []}
            scheduler.run_invitation_batch()

        run_all.assert_called_once_with()
