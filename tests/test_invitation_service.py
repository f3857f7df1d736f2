"""
Tests for invitation codes and the batch inviter.

Covers:
- Code allocation and collision exhaustion
- Redemption (success, replay, someone else's code, expiry)
- Batch ordering, quota, delivery failures and dry runs
- Manual invitations
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from growthkit.extensions import db
from growthkit.models import CreditEntry, EventLog, GrowthApp, Profile, WaitlistEntry, WaitlistStatus
from growthkit.services.invitation_service import InvitationService, invitation_service
from growthkit.services.policy import AppPolicy
from growthkit.utils.codes import is_invitation_code
from growthkit.utils.exceptions import CollisionExhaustionError, InvalidStatusTransitionError, ValidationError

NOW = datetime(2026, 3, 1, 12, 0, 0)
GENERATOR = 'growthkit.services.invitation_service.generate_invitation_code'


@pytest.fixture
def add_entry(sample_app):
    """Factory for waitlist entries at explicit positions."""
    def _add(email, position, status=WaitlistStatus.WAITING, created_at=None, **kwargs):
        entry = WaitlistEntry(
            app_id=sample_app.id,
            email=email,
            position=position,
            status=status.value,
            created_at=created_at or NOW,
            **kwargs
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    return _add


class TestAllocateCode:

    def test_allocates_valid_code(self, app, sample_app):
        code = invitation_service.allocate_code(sample_app.id)
        assert is_invitation_code(code)

    def test_retries_on_collision(self, app, sample_app, add_entry):
        add_entry('taken@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AAAAAA')

        with patch(GENERATOR, side_effect=['INV-AAAAAA', 'INV-AAAAAA', 'INV-BBBBBB']):
            assert invitation_service.allocate_code(sample_app.id) == 'INV-BBBBBB'

    def test_exhaustion(self, app, sample_app, add_entry):
        add_entry('taken@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AAAAAA')

        with patch(GENERATOR, return_value='INV-AAAAAA') as generator:
            with pytest.raises(CollisionExhaustionError):
                invitation_service.allocate_code(sample_app.id)
        assert generator.call_count == 5


class TestRedeem:

    def test_redeem_accepts_entry_and_awards_credits(self, app, sample_app, sample_identity, add_entry):
        entry = add_entry(
            'ada@example.com', 1, WaitlistStatus.INVITED,
            invitation_code='INV-AB12CD', code_expires_at=NOW + timedelta(days=7),
        )

        outcome = invitation_service.redeem(
            AppPolicy.from_app(sample_app), sample_identity, 'inv-ab12cd', now=NOW
        )
        db.session.commit()

        assert outcome.status == 'redeemed'
        assert outcome.credits_awarded == 5
        assert entry.status == WaitlistStatus.ACCEPTED.value
        assert entry.code_used_at == NOW
        assert entry.identity_id == sample_identity.id
        assert entry.use_count == 1
        assert sample_identity.credit_balance == 5

        profile = Profile.query.filter_by(identity_id=sample_identity.id).one()
        assert profile.email == 'ada@example.com'
        assert profile.email_verified is True
        assert EventLog.query.filter_by(event='invitation.redeemed').count() == 1

    def test_replay_by_same_identity(self, app, sample_app, sample_identity, add_entry):
        add_entry('ada@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AB12CD')
        policy = AppPolicy.from_app(sample_app)
        invitation_service.redeem(policy, sample_identity, 'INV-AB12CD', now=NOW)

        outcome = invitation_service.redeem(policy, sample_identity, 'INV-AB12CD', now=NOW)
        db.session.commit()

        assert outcome.status == 'replayed'
        assert CreditEntry.query.count() == 1

    def test_code_used_by_someone_else(self, app, sample_app, make_identity, add_entry):
        entry = add_entry('ada@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AB12CD')
        policy = AppPolicy.from_app(sample_app)
        first, second = make_identity(), make_identity()
        invitation_service.redeem(policy, first, 'INV-AB12CD', now=NOW)

        outcome = invitation_service.redeem(policy, second, 'INV-AB12CD', now=NOW)
        db.session.commit()

        assert outcome.status == 'ignored'
        assert outcome.reason == 'code_used'
        assert entry.identity_id == first.id
        assert second.credit_balance == 0

    def test_expired_code_changes_nothing(self, app, sample_app, sample_identity, add_entry):
        entry = add_entry(
            'ada@example.com', 1, WaitlistStatus.INVITED,
            invitation_code='INV-AB12CD', code_expires_at=NOW - timedelta(minutes=1),
        )

        outcome = invitation_service.redeem(
            AppPolicy.from_app(sample_app), sample_identity, 'INV-AB12CD', now=NOW
        )
        db.session.commit()

        assert outcome.status == 'ignored'
        assert outcome.reason == 'code_expired'
        assert entry.status == WaitlistStatus.INVITED.value
        assert entry.code_used_at is None
        assert entry.use_count == 0
        assert sample_identity.credit_balance == 0
        assert CreditEntry.query.count() == 0

    def test_unknown_code(self, app, sample_app, sample_identity):
        outcome = invitation_service.redeem(AppPolicy.from_app(sample_app), sample_identity, 'INV-ZZZZZZ')
        assert outcome.reason == 'unknown_code'

    def test_code_from_other_app_is_unknown(self, app, sample_app, sample_identity, add_entry):
        other = GrowthApp(name='Other', api_key='other-key', settings={})
        db.session.add(other)
        db.session.commit()
        add_entry('ada@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AB12CD')

        outcome = invitation_service.redeem(AppPolicy.from_app(other), sample_identity, 'INV-AB12CD')
        assert outcome.reason == 'unknown_code'

    def test_non_string_code_rejected(self, app, sample_app, sample_identity):
        with pytest.raises(ValidationError) as exc:
            invitation_service.redeem(AppPolicy.from_app(sample_app), sample_identity, 12345)
        assert exc.value.code == 'INVALID_INVITATION_CODE'


def _redeemed_concurrently_by(identity):
    """Stand-in for is_code_expired that lets another request use the code first."""
    def _mark_used(entry, now=None):
        WaitlistEntry.query.filter_by(id=entry.id).update({
            WaitlistEntry.code_used_at: NOW,
            WaitlistEntry.identity_id: identity.id,
            WaitlistEntry.use_count: 1,
        }, synchronize_session=False)
        return False
    return _mark_used


class TestRedeemRace:
    """The code is used between our read and our conditional UPDATE."""

    def test_lost_race_to_same_identity_is_replay(self, app, sample_app, sample_identity, add_entry):
        add_entry('ada@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AB12CD')

        with patch.object(WaitlistEntry, 'is_code_expired', autospec=True,
                          side_effect=_redeemed_concurrently_by(sample_identity)):
            outcome = invitation_service.redeem(
                AppPolicy.from_app(sample_app), sample_identity, 'INV-AB12CD', now=NOW
            )
        db.session.commit()

        assert outcome.status == 'replayed'
        assert outcome.credits_awarded == 0
        assert CreditEntry.query.count() == 0
        assert sample_identity.credit_balance == 0

    def test_lost_race_to_other_identity_is_ignored(self, app, sample_app, make_identity, add_entry):
        entry = add_entry('ada@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AB12CD')
        winner, loser = make_identity(), make_identity()

        with patch.object(WaitlistEntry, 'is_code_expired', autospec=True,
                          side_effect=_redeemed_concurrently_by(winner)):
            outcome = invitation_service.redeem(
                AppPolicy.from_app(sample_app), loser, 'INV-AB12CD', now=NOW
            )
        db.session.commit()

        assert outcome.status == 'ignored'
        assert outcome.reason == 'code_used'
        assert entry.identity_id == winner.id
        assert entry.use_count == 1
        assert CreditEntry.query.count() == 0
        assert EventLog.query.filter_by(event='invitation.redeemed').count() == 0


class TestBatchInviter:

    def test_invites_in_position_order_up_to_quota(self, app, sample_app, add_entry, fake_email_sender):
        sample_app.settings = {'invitations': {'daily_invite_quota': 2, 'expiry_days': 3}}
        db.session.commit()
        third = add_entry('c@example.com', 3)
        first = add_entry('a@example.com', 1)
        second = add_entry('b@example.com', 2)

        results = InvitationService(email_sender=fake_email_sender).run_batch(sample_app, now=NOW)

        assert results['processed'] == 2
        assert results['invited'] == 2
        assert results['failed'] == 0
        assert [call.args[0] for call in fake_email_sender.send.call_args_list] == [
            'a@example.com', 'b@example.com'
        ]

        for entry in (first, second):
            assert entry.status == WaitlistStatus.INVITED.value
            assert entry.invited_via == 'auto'
            assert entry.invited_at == NOW
            assert entry.code_expires_at == NOW + timedelta(days=3)
            assert is_invitation_code(entry.invitation_code)
        assert third.status == WaitlistStatus.WAITING.value

    def test_email_carries_code(self, app, sample_app, add_entry, fake_email_sender):
        entry = add_entry('a@example.com', 1, name='Ada')

        InvitationService(email_sender=fake_email_sender).run_batch(sample_app, now=NOW)

        to, template, data = fake_email_sender.send.call_args.args
        assert to == 'a@example.com'
        assert template == 'invitation'
        assert data['invitation_code'] == entry.invitation_code
        assert data['name'] == 'Ada'

    def test_delivery_failure_leaves_entry_waiting(self, app, sample_app, add_entry, fake_email_sender):
        bounced = add_entry('bounce@example.com', 1)
        delivered = add_entry('ok@example.com', 2)
        fake_email_sender.send.side_effect = lambda to, template, data: (
            {'success': False, 'error': 'Mailbox unavailable'} if to == 'bounce@example.com'
            else {'success': True}
        )

        results = InvitationService(email_sender=fake_email_sender).run_batch(sample_app, now=NOW)

        assert results['invited'] == 1
        assert results['failed'] == 1
        assert results['errors'][0]['error'] == 'Mailbox unavailable'
        assert bounced.status == WaitlistStatus.WAITING.value
        assert bounced.invitation_code is None
        assert delivered.status == WaitlistStatus.INVITED.value
        assert EventLog.query.filter_by(event='waitlist.invite_failed').count() == 1

    def test_failed_entry_retried_next_run(self, app, sample_app, add_entry, fake_email_sender):
        entry = add_entry('flaky@example.com', 1)
        inviter = InvitationService(email_sender=fake_email_sender)

        fake_email_sender.send.return_value = {'success': False, 'error': 'Timeout'}
        inviter.run_batch(sample_app, now=NOW)
        fake_email_sender.send.return_value = {'success': True}
        results = inviter.run_batch(sample_app, now=NOW + timedelta(days=1))

        assert results['invited'] == 1
        assert entry.status == WaitlistStatus.INVITED.value

    def test_code_collision_fails_only_that_entry(self, app, sample_app, add_entry, fake_email_sender):
        add_entry('taken@example.com', 1, WaitlistStatus.INVITED, invitation_code='INV-AAAAAA')
        unlucky = add_entry('a@example.com', 2)
        lucky = add_entry('b@example.com', 3)

        with patch(GENERATOR, side_effect=['INV-AAAAAA'] * 5 + ['INV-BBBBBB']):
            results = InvitationService(email_sender=fake_email_sender).run_batch(sample_app, now=NOW)

        assert results['failed'] == 1
        assert results['invited'] == 1
        assert unlucky.status == WaitlistStatus.WAITING.value
        assert lucky.invitation_code == 'INV-BBBBBB'
        assert fake_email_sender.send.call_count == 1

    def test_dry_run_writes_nothing(self, app, sample_app, add_entry, fake_email_sender):
        entry = add_entry('a@example.com', 1)

        results = InvitationService(email_sender=fake_email_sender).run_batch(sample_app, dry_run=True, now=NOW)

        assert results['processed'] == 1
        assert results['invited'] == 0
        assert results['details'][0]['action'] == 'would_invite'
        assert entry.status == WaitlistStatus.WAITING.value
        fake_email_sender.send.assert_not_called()

    def test_explicit_limit(self, app, sample_app, add_entry, fake_email_sender):
        for position in range(1, 4):
            add_entry(f'user{position}@example.com', position)

        results = InvitationService(email_sender=fake_email_sender).run_batch(sample_app, limit=1, now=NOW)
        assert results['invited'] == 1

    def test_run_all_only_auto_invite_apps(self, app, sample_app, add_entry, fake_email_sender):
        add_entry('a@example.com', 1)
        inviter = InvitationService(email_sender=fake_email_sender)

        assert inviter.run_all(now=NOW)['apps'] == 0

        sample_app.auto_invite_enabled = True
        db.session.commit()
        summary = inviter.run_all(now=NOW)

        assert summary['apps'] == 1
        assert summary['invited'] == 1


class TestIssueInvitation:

    def test_issue_creates_entry(self, app, sample_app):
        entry = invitation_service.issue_invitation(
            AppPolicy.from_app(sample_app), 'New@Example.com', expires_in_days=2, now=NOW
        )

        assert entry.email == 'new@example.com'
        assert entry.status == WaitlistStatus.INVITED.value
        assert entry.invited_via == 'manual'
        assert entry.code_expires_at == NOW + timedelta(days=2)
        assert is_invitation_code(entry.invitation_code)

    def test_issue_to_waiting_entry_keeps_position(self, app, sample_app, add_entry):
        entry = add_entry('a@example.com', 4)

        issued = invitation_service.issue_invitation(AppPolicy.from_app(sample_app), 'a@example.com', now=NOW)

        assert issued.id == entry.id
        assert issued.position == 4
        assert issued.code_expires_at == NOW + timedelta(days=7)

    def test_zero_days_never_expires(self, app, sample_app):
        entry = invitation_service.issue_invitation(
            AppPolicy.from_app(sample_app), 'a@example.com', expires_in_days=0, now=NOW
        )
        assert entry.code_expires_at is None

    def test_accepted_entry_cannot_be_reinvited(self, app, sample_app, add_entry):
        add_entry('done@example.com', 1, WaitlistStatus.ACCEPTED)

        with pytest.raises(InvalidStatusTransitionError):
            invitation_service.issue_invitation(AppPolicy.from_app(sample_app), 'done@example.com')
