"""
Growth app model.
An app is the tenant that owns identities, referrals and a waitlist.
"""
from datetime import datetime
from ..extensions import db


class GrowthApp(db.Model):
    """
    A client application integrating GrowthKit.

    The growth engine only reads from this table; admins manage it out of band.
    Credit amounts and limits live in ``settings`` (see utils/settings_defaults.py).
    """
    __tablename__ = 'apps'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    api_key = db.Column(db.String(64), unique=True, nullable=False, index=True)
    domain = db.Column(db.String(255))

    is_active = db.Column(db.Boolean, default=True)
    credits_paused = db.Column(db.Boolean, default=False)

    # Waitlist gating
    waitlist_enabled = db.Column(db.Boolean, default=False)
    waitlist_enabled_at = db.Column(db.DateTime)  # Identities created before this are grandfathered
    auto_invite_enabled = db.Column(db.Boolean, default=False)

    # Shareable code not tied to any identity
    master_referral_code = db.Column(db.String(50))

    settings = db.Column(db.JSON, default=dict)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    identities = db.relationship('Identity', backref='app', lazy='dynamic')

    def __repr__(self):
        return f'<GrowthApp {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'domain': self.domain,
            'is_active': self.is_active,
            'credits_paused': self.credits_paused,
            'waitlist_enabled': self.waitlist_enabled,
            'waitlist_enabled_at': self.waitlist_enabled_at.isoformat() if self.waitlist_enabled_at else None,
            'auto_invite_enabled': self.auto_invite_enabled,
            'master_referral_code': self.master_referral_code,
            'settings': self.settings or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
