"""
Referral models.
Tracks who referred whom and how many referrals each referrer landed per day.
"""
from datetime import datetime
from ..extensions import db


class Referral(db.Model):
    """
    A claimed referral.

    ``referred_id`` is unique: an identity can be referred at most once, no
    matter how many requests race to claim it. Master-code referrals have no
    referrer.
    """
    __tablename__ = 'referrals'

    id = db.Column(db.Integer, primary_key=True)
    app_id = db.Column(db.Integer, db.ForeignKey('apps.id'), nullable=False)

    referrer_id = db.Column(db.Integer, db.ForeignKey('identities.id'))
    referred_id = db.Column(db.Integer, db.ForeignKey('identities.id'), nullable=False)

    referral_code = db.Column(db.String(50), nullable=False)
    is_master = db.Column(db.Boolean, default=False)

    # Credits actually awarded by this claim
    referrer_credits = db.Column(db.Integer, default=0)
    referred_credits = db.Column(db.Integer, default=0)

    claimed_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('referred_id', name='uq_referrals_referred'),
        db.Index('ix_referrals_referrer', 'referrer_id'),
    )

    # Relationships
    referrer = db.relationship('Identity', foreign_keys=[referrer_id], backref='referrals_made')
    referred = db.relationship('Identity', foreign_keys=[referred_id], backref='referral_received')

    def __repr__(self):
        return f'<Referral {self.referral_code} referred={self.referred_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'app_id': self.app_id,
            'referrer_id': self.referrer_id,
            'referred_id': self.referred_id,
            'referral_code': self.referral_code,
            'is_master': self.is_master,
            'referrer_credits': self.referrer_credits,
            'referred_credits': self.referred_credits,
            'claimed_at': self.claimed_at.isoformat() if self.claimed_at else None,
        }


class ReferralDailyCounter(db.Model):
    """
    Successful referrals per referrer per UTC day.
    Incremented with a conditional UPDATE so the cap holds under concurrency.
    """
    __tablename__ = 'referral_daily_counters'

    id = db.Column(db.Integer, primary_key=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey('identities.id'), nullable=False)
    day = db.Column(db.Date, nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('referrer_id', 'day', name='uq_referral_daily_counters_referrer_day'),
    )

    def __repr__(self):
        return f'<ReferralDailyCounter referrer={self.referrer_id} {self.day}: {self.count}>'
