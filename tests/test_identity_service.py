"""
Tests for the Identity Store.
"""
import pytest
from unittest.mock import patch

from growthkit.extensions import db
from growthkit.models import EventLog, GrowthApp, Identity
from growthkit.services.identity_service import identity_service
from growthkit.utils.codes import is_valid_referral_code
from growthkit.utils.exceptions import (
    CollisionExhaustionError,
    IdentityNotFoundError,
    ValidationError,
)


class TestResolveOrCreate:
    """Tests for IdentityService.resolve_or_create."""

    def test_creates_identity_with_referral_code(self, app, sample_app):
        identity, created = identity_service.resolve_or_create(sample_app.id, 'fp_new')
        db.session.commit()

        assert created is True
        assert identity.fingerprint == 'fp_new'
        assert identity.credit_balance == 0
        assert is_valid_referral_code(identity.referral_code)

    def test_same_fingerprint_resolves_to_same_identity(self, app, sample_app):
        first, _ = identity_service.resolve_or_create(sample_app.id, 'fp_same')
        db.session.commit()
        second, created = identity_service.resolve_or_create(sample_app.id, 'fp_same')

        assert created is False
        assert second.id == first.id
        assert second.referral_code == first.referral_code
        assert Identity.query.filter_by(fingerprint='fp_same').count() == 1

    def test_fingerprints_are_scoped_per_app(self, app, sample_app):
        other_app = GrowthApp(name='Other', api_key='other-key', settings={})
        db.session.add(other_app)
        db.session.commit()

        a, _ = identity_service.resolve_or_create(sample_app.id, 'fp_shared')
        b, _ = identity_service.resolve_or_create(other_app.id, 'fp_shared')
        db.session.commit()

        assert a.id != b.id

    def test_creation_is_audited(self, app, sample_app):
        identity, _ = identity_service.resolve_or_create(
            sample_app.id, 'fp_audit', ip_address='10.0.0.1', user_agent='pytest'
        )
        db.session.commit()

        event = EventLog.query.filter_by(event='fingerprint.created').one()
        assert event.entity_id == str(identity.id)
        assert event.ip_address == '10.0.0.1'
        assert event.user_agent == 'pytest'

    @pytest.mark.parametrize('fingerprint', [None, '', '   ', 42, 'x' * 257])
    def test_invalid_fingerprint(self, app, sample_app, fingerprint):
        with pytest.raises(ValidationError) as exc:
            identity_service.resolve_or_create(sample_app.id, fingerprint)
        assert exc.value.code == 'INVALID_FINGERPRINT'

    def test_max_length_fingerprint_accepted(self, app, sample_app):
        identity, created = identity_service.resolve_or_create(sample_app.id, 'x' * 256)
        assert created is True

    def test_referral_code_collision_retries(self, app, sample_identity):
        with patch(
            'growthkit.services.identity_service.generate_referral_code',
            side_effect=[sample_identity.referral_code, 'GROWTH-B0B0B0'],
        ):
            identity, created = identity_service.resolve_or_create(sample_identity.app_id, 'fp_retry')

        assert created is True
        assert identity.referral_code == 'GROWTH-B0B0B0'

    def test_referral_code_collision_exhaustion(self, app, sample_identity):
        with patch(
            'growthkit.services.identity_service.generate_referral_code',
            return_value=sample_identity.referral_code,
        ):
            with pytest.raises(CollisionExhaustionError) as exc:
                identity_service.resolve_or_create(sample_identity.app_id, 'fp_unlucky')

        assert exc.value.attempts == 5
        assert Identity.query.filter_by(fingerprint='fp_unlucky').count() == 0

    def test_concurrent_create_returns_winner(self, app, sample_app, make_identity):
        """A request that loses the insert race resolves to the row that won."""
        winner = make_identity(fingerprint='fp_race', referral_code='GROWTH-0A0A0A')

        with patch.object(identity_service, 'find', side_effect=[None, winner]):
            identity, created = identity_service.resolve_or_create(sample_app.id, 'fp_race')

        assert created is False
        assert identity.id == winner.id
        assert Identity.query.filter_by(fingerprint='fp_race').count() == 1


class TestLookups:

    def test_get_unknown_identity(self, app, sample_app):
        with pytest.raises(IdentityNotFoundError):
            identity_service.get(12345)

    def test_find_by_referral_code_is_case_insensitive(self, app, sample_identity):
        found = identity_service.find_by_referral_code(sample_identity.app_id, 'growth-aaaaaa')
        assert found.id == sample_identity.id
