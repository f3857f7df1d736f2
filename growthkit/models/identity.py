"""
Anonymous identity model.
"""
from datetime import datetime
from ..extensions import db


class Identity(db.Model):
    """
    An anonymous end user, keyed by (app, fingerprint).

    Identities are never deleted and their referral code never changes.
    ``credit_balance`` is a materialized sum of the identity's credit entries,
    only ever changed in the same transaction that appends an entry.
    """
    __tablename__ = 'identities'

    id = db.Column(db.Integer, primary_key=True)
    app_id = db.Column(db.Integer, db.ForeignKey('apps.id'), nullable=False)

    fingerprint = db.Column(db.String(256), nullable=False)
    referral_code = db.Column(db.String(20), nullable=False)

    credit_balance = db.Column(db.Integer, nullable=False, default=0)

    # Daily grant bookkeeping
    last_daily_grant = db.Column(db.DateTime)
    last_active_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('app_id', 'fingerprint', name='uq_identities_app_fingerprint'),
        db.UniqueConstraint('app_id', 'referral_code', name='uq_identities_app_referral_code'),
    )

    # Relationships
    credit_entries = db.relationship('CreditEntry', backref='identity', lazy='dynamic')

    def __repr__(self):
        return f'<Identity {self.referral_code} app={self.app_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'app_id': self.app_id,
            'referral_code': self.referral_code,
            'credit_balance': self.credit_balance,
            'last_daily_grant': self.last_daily_grant.isoformat() if self.last_daily_grant else None,
            'last_active_at': self.last_active_at.isoformat() if self.last_active_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
