"""
Tests for waitlist admission and entitlement.
"""
import pytest
from datetime import datetime, timedelta

from growthkit.extensions import db
from growthkit.models import CreditEntry, EventLog, Profile, Referral, WaitlistEntry, WaitlistStatus
from growthkit.services.policy import AppPolicy
from growthkit.services.waitlist_service import NO_ENTRY, waitlist_service
from growthkit.utils.validation import normalize_email
from growthkit.utils.exceptions import InvalidStatusTransitionError, ValidationError

ENABLED_AT = datetime(2026, 2, 1)


@pytest.fixture
def waitlist_app(sample_app):
    sample_app.waitlist_enabled = True
    sample_app.waitlist_enabled_at = ENABLED_AT
    db.session.commit()
    return sample_app


@pytest.fixture
def new_identity(make_identity):
    """An identity created after the waitlist went live."""
    return make_identity(created_at=ENABLED_AT + timedelta(days=1))


class TestNormalizeEmail:

    def test_lowercases_and_strips(self):
        assert normalize_email('  Ada@Example.COM ') == 'ada@example.com'

    @pytest.mark.parametrize('value', [None, '', 'not-an-email', 'a@b', 'a b@example.com', 42])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValidationError) as exc:
            normalize_email(value)
        assert exc.value.code == 'INVALID_EMAIL'


class TestEntitlement:

    def test_waitlist_disabled(self, app, sample_app, sample_identity):
        entitlement = waitlist_service.compute_entitlement(AppPolicy.from_app(sample_app), sample_identity)
        assert entitlement.entitled is True
        assert entitlement.requires_waitlist is False

    def test_grandfathered_identity(self, app, waitlist_app, make_identity):
        early = make_identity(created_at=ENABLED_AT - timedelta(days=30))

        entitlement = waitlist_service.compute_entitlement(AppPolicy.from_app(waitlist_app), early)

        assert entitlement.entitled is True
        assert entitlement.grandfathered is True

    def test_new_identity_without_entry(self, app, waitlist_app, new_identity):
        entitlement = waitlist_service.compute_entitlement(AppPolicy.from_app(waitlist_app), new_identity)

        assert entitlement.entitled is False
        assert entitlement.grandfathered is False
        assert entitlement.requires_waitlist is True

    def test_waiting_entry_not_entitled(self, app, waitlist_app, new_identity):
        db.session.add(WaitlistEntry(
            app_id=waitlist_app.id, identity_id=new_identity.id, email='w@example.com', position=1
        ))
        db.session.commit()

        entitlement = waitlist_service.compute_entitlement(AppPolicy.from_app(waitlist_app), new_identity)
        assert entitlement.entitled is False

    @pytest.mark.parametrize('status', [WaitlistStatus.INVITED, WaitlistStatus.ACCEPTED])
    def test_admitted_entry_entitled(self, app, waitlist_app, new_identity, status):
        db.session.add(WaitlistEntry(
            app_id=waitlist_app.id, identity_id=new_identity.id,
            email='w@example.com', position=1, status=status.value,
        ))
        db.session.commit()

        entitlement = waitlist_service.compute_entitlement(AppPolicy.from_app(waitlist_app), new_identity)
        assert entitlement.entitled is True

    def test_entry_found_through_profile_email(self, app, waitlist_app, new_identity):
        db.session.add(WaitlistEntry(
            app_id=waitlist_app.id, email='w@example.com', position=1, status=WaitlistStatus.INVITED.value,
        ))
        db.session.add(Profile(app_id=waitlist_app.id, identity_id=new_identity.id, email='w@example.com'))
        db.session.commit()

        entitlement = waitlist_service.compute_entitlement(AppPolicy.from_app(waitlist_app), new_identity)
        assert entitlement.entitled is True

    def test_referred_identity_entitled(self, app, waitlist_app, new_identity):
        db.session.add(Referral(
            app_id=waitlist_app.id, referred_id=new_identity.id, referral_code='LAUNCH', is_master=True,
        ))
        db.session.commit()

        entitlement = waitlist_service.compute_entitlement(AppPolicy.from_app(waitlist_app), new_identity)
        assert entitlement.entitled is True
        assert entitlement.reason == 'referred'

    def test_just_referred(self, app, waitlist_app, new_identity):
        entitlement = waitlist_service.compute_entitlement(
            AppPolicy.from_app(waitlist_app), new_identity, just_referred=True
        )
        assert entitlement.entitled is True


class TestJoin:

    def test_join_appends_to_end(self, app, waitlist_app, make_identity):
        first, second = make_identity(), make_identity()
        policy = AppPolicy.from_app(waitlist_app)

        a = waitlist_service.join(policy, first, 'a@example.com', name='Ada')
        b = waitlist_service.join(policy, second, 'B@Example.com')

        assert a['entry'].position == 1
        assert b['entry'].position == 2
        assert b['entry'].email == 'b@example.com'
        assert b['entry'].status == WaitlistStatus.WAITING.value
        assert b['entry'].identity_id == second.id
        assert a['already_joined'] is False
        assert EventLog.query.filter_by(event='waitlist.joined').count() == 2

        profile = Profile.query.filter_by(identity_id=first.id).one()
        assert profile.email == 'a@example.com'
        assert profile.name == 'Ada'

    def test_rejoin_returns_existing(self, app, waitlist_app, new_identity):
        policy = AppPolicy.from_app(waitlist_app)
        first = waitlist_service.join(policy, new_identity, 'a@example.com')

        again = waitlist_service.join(policy, new_identity, 'A@example.com')

        assert again['already_joined'] is True
        assert again['entry'].id == first['entry'].id
        assert WaitlistEntry.query.count() == 1

    def test_join_credits(self, app, waitlist_app, new_identity):
        waitlist_app.settings = {'credits': {'waitlist_join_credits': 2}}
        db.session.commit()
        policy = AppPolicy.from_app(waitlist_app)

        result = waitlist_service.join(policy, new_identity, 'a@example.com')
        waitlist_service.join(policy, new_identity, 'a@example.com')

        assert result['credits_awarded'] == 2
        assert new_identity.credit_balance == 2
        assert CreditEntry.query.one().reason == 'waitlist_join'

    def test_join_disabled_waitlist(self, app, sample_app, sample_identity):
        with pytest.raises(ValidationError):
            waitlist_service.join(AppPolicy.from_app(sample_app), sample_identity, 'a@example.com')

    def test_join_invalid_email(self, app, waitlist_app, new_identity):
        with pytest.raises(ValidationError):
            waitlist_service.join(AppPolicy.from_app(waitlist_app), new_identity, 'nope')
        assert WaitlistEntry.query.count() == 0

    @pytest.mark.parametrize('name', [{'x': 1}, 42, ['Ada']])
    def test_join_non_string_name(self, app, waitlist_app, new_identity, name):
        with pytest.raises(ValidationError) as exc:
            waitlist_service.join(AppPolicy.from_app(waitlist_app), new_identity, 'a@example.com', name=name)
        assert exc.value.code == 'INVALID_NAME'
        assert WaitlistEntry.query.count() == 0

    def test_join_blank_name_is_dropped(self, app, waitlist_app, new_identity):
        entry = waitlist_service.join(AppPolicy.from_app(waitlist_app), new_identity, 'a@example.com', name='  ')['entry']
        assert entry.name is None

    def test_state(self, app, waitlist_app, new_identity):
        policy = AppPolicy.from_app(waitlist_app)
        assert waitlist_service.get_state(waitlist_app.id, new_identity).status == NO_ENTRY

        waitlist_service.join(policy, new_identity, 'a@example.com')
        state = waitlist_service.get_state(waitlist_app.id, new_identity)

        assert state.to_dict() == {'status': 'WAITING', 'position': 1}


class TestAdmissionStateMachine:

    def test_forward_moves(self):
        entry = WaitlistEntry(status=WaitlistStatus.WAITING.value)

        assert entry.advance_to(WaitlistStatus.INVITED) is True
        assert entry.advance_to(WaitlistStatus.INVITED) is False
        assert entry.advance_to(WaitlistStatus.ACCEPTED) is True
        assert entry.status == 'ACCEPTED'

    @pytest.mark.parametrize('current,target', [
        (WaitlistStatus.INVITED, WaitlistStatus.WAITING),
        (WaitlistStatus.ACCEPTED, WaitlistStatus.INVITED),
        (WaitlistStatus.ACCEPTED, WaitlistStatus.WAITING),
    ])
    def test_backward_moves_rejected(self, current, target):
        entry = WaitlistEntry(status=current.value)

        with pytest.raises(InvalidStatusTransitionError):
            entry.advance_to(target)
        assert entry.status == current.value

    def test_referral_does_not_admit_waiting_entry(self, app, waitlist_app, new_identity):
        policy = AppPolicy.from_app(waitlist_app)
        entry = waitlist_service.join(policy, new_identity, 'a@example.com')['entry']

        assert waitlist_service.apply_referral(policy, new_identity, is_master=False) is None
        assert entry.status == WaitlistStatus.WAITING.value


class TestConfirmationEmail:

    def test_sends_position(self, app, waitlist_app, new_identity, fake_email_sender):
        policy = AppPolicy.from_app(waitlist_app)
        entry = waitlist_service.join(policy, new_identity, 'a@example.com', name='Ada')['entry']

        waitlist_service.send_confirmation(policy, entry, email_sender=fake_email_sender)

        fake_email_sender.send.assert_called_once_with('a@example.com', 'waitlist_confirmation', {
            'name': 'Ada',
            'app_name': 'Test App',
            'position': 1,
        })

    def test_failure_is_not_raised(self, app, waitlist_app, new_identity, fake_email_sender):
        policy = AppPolicy.from_app(waitlist_app)
        entry = waitlist_service.join(policy, new_identity, 'a@example.com')['entry']
        fake_email_sender.send.return_value = {'success': False, 'error': 'SendGrid down'}

        result = waitlist_service.send_confirmation(policy, entry, email_sender=fake_email_sender)
        assert result['success'] is False
