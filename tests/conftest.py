"""
Shared pytest fixtures.

Every test gets a fresh in-memory database and runs inside an application
context pushed by the ``app`` fixture.
"""
import pytest
from datetime import datetime
from unittest.mock import MagicMock

from growthkit import create_app
from growthkit.extensions import db
from growthkit.models import GrowthApp, Identity
from growthkit.services.claims import signature_verifier

APP_KEY = 'test-app-key'


@pytest.fixture
def app():
    """Flask app with a fresh schema."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_app(app):
    """An active growth app with default policy."""
    growth_app = GrowthApp(
        name='Test App',
        api_key=APP_KEY,
        domain='test.example.com',
        is_active=True,
        settings={},
    )
    db.session.add(growth_app)
    db.session.commit()
    return growth_app


@pytest.fixture
def make_identity(sample_app):
    """Factory for identities with a chosen fingerprint and referral code."""
    counter = {'n': 0}

    def _make(fingerprint=None, referral_code=None, created_at=None, growth_app=None, **kwargs):
        counter['n'] += 1
        identity = Identity(
            app_id=(growth_app or sample_app).id,
            fingerprint=fingerprint or f"fp_{counter['n']}",
            referral_code=referral_code or f"GROWTH-{counter['n']:06X}",
            credit_balance=0,
            created_at=created_at or datetime.utcnow(),
            **kwargs
        )
        db.session.add(identity)
        db.session.commit()
        return identity

    return _make


@pytest.fixture
def sample_identity(make_identity):
    return make_identity(fingerprint='fp_sample', referral_code='GROWTH-AAAAAA')


@pytest.fixture
def app_headers(sample_app):
    return {'X-App-Key': APP_KEY}


@pytest.fixture
def service_headers(app):
    return {'Authorization': f"Bearer {app.config['SERVICE_KEY']}"}


@pytest.fixture
def fake_email_sender():
    sender = MagicMock()
    sender.send.return_value = {'success': True, 'status_code': 202}
    return sender


@pytest.fixture
def issue_token(app):
    """Sign a referral token the way the exchange endpoint does."""
    def _issue(referral_code, app_id, ttl_seconds=300):
        return signature_verifier.issue(referral_code, app_id, ttl_seconds)
    return _issue
