"""
Credit ledger model.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class CreditReason(str, Enum):
    """Why an identity's balance moved."""
    STARTING_GRANT = 'starting_grant'            # First grant an identity ever receives
    DAILY_GRANT = 'daily_grant'                  # Recurring grant, at most once per day
    REFERRAL = 'referral'                        # Both sides of an identity referral
    MASTER_REFERRAL = 'master_referral'          # Claimed the app's master code
    INVITATION_ACCEPTED = 'invitation_accepted'  # Redeemed an invitation code
    WAITLIST_JOIN = 'waitlist_join'              # Joined the waitlist
    NAME_CLAIM = 'name_claim'                    # Shared a display name
    EMAIL_CLAIM = 'email_claim'                  # Shared an email address
    EMAIL_VERIFY = 'email_verify'                # Confirmed that email address
    CONSUMPTION = 'consumption'                  # Spent on an action (negative amount)


class CreditEntry(db.Model):
    """
    Append-only ledger entry. Rows are never updated or deleted.
    """
    __tablename__ = 'credit_entries'

    id = db.Column(db.Integer, primary_key=True)
    identity_id = db.Column(db.Integer, db.ForeignKey('identities.id'), nullable=False)

    amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(30), nullable=False)
    entry_metadata = db.Column('metadata', db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_credit_entries_identity_created', 'identity_id', 'created_at'),
    )

    def __repr__(self):
        return f'<CreditEntry {self.amount} {self.reason} identity={self.identity_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'identity_id': self.identity_id,
            'amount': self.amount,
            'reason': self.reason,
            'metadata': self.entry_metadata or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
