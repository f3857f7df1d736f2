"""
Waitlist models.
Admission state for emails waiting to get into an app.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db
from ..utils.exceptions import InvalidStatusTransitionError


class WaitlistStatus(str, Enum):
    """Admission states. Entries only ever move forward through this list."""
    WAITING = 'WAITING'
    INVITED = 'INVITED'
    ACCEPTED = 'ACCEPTED'


# Forward order of the admission state machine
STATUS_RANK = {
    WaitlistStatus.WAITING.value: 0,
    WaitlistStatus.INVITED.value: 1,
    WaitlistStatus.ACCEPTED.value: 2,
}

ADMITTED_STATUSES = (WaitlistStatus.INVITED.value, WaitlistStatus.ACCEPTED.value)


class WaitlistEntry(db.Model):
    """
    One email's place on an app's waitlist, plus its invitation code.
    """
    __tablename__ = 'waitlist_entries'

    id = db.Column(db.Integer, primary_key=True)
    app_id = db.Column(db.Integer, db.ForeignKey('apps.id'), nullable=False)
    identity_id = db.Column(db.Integer, db.ForeignKey('identities.id'))

    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(200))

    status = db.Column(db.String(20), nullable=False, default=WaitlistStatus.WAITING.value)
    position = db.Column(db.Integer, nullable=False)

    # Invitation
    invitation_code = db.Column(db.String(10))
    code_expires_at = db.Column(db.DateTime)  # null = never expires
    code_used_at = db.Column(db.DateTime)
    use_count = db.Column(db.Integer, nullable=False, default=0)
    invited_at = db.Column(db.DateTime)
    invited_via = db.Column(db.String(20))  # auto, manual, referral
    accepted_at = db.Column(db.DateTime)

    entry_metadata = db.Column('metadata', db.JSON)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('app_id', 'email', name='uq_waitlist_entries_app_email'),
        db.UniqueConstraint('app_id', 'invitation_code', name='uq_waitlist_entries_app_code'),
        db.UniqueConstraint('app_id', 'position', name='uq_waitlist_entries_app_position'),
        db.Index('ix_waitlist_entries_app_status', 'app_id', 'status'),
    )

    def __repr__(self):
        return f'<WaitlistEntry {self.email} {self.status} #{self.position}>'

    def advance_to(self, status) -> bool:
        """
        Move the entry forward to ``status``.

        Returns True if the status changed, False if it was already there.

        Raises:
            InvalidStatusTransitionError: when asked to move backwards
        """
        target = status.value if isinstance(status, WaitlistStatus) else status
        if target not in STATUS_RANK:
            raise InvalidStatusTransitionError('waitlist entry', self.status, target)

        current_rank = STATUS_RANK[self.status]
        if STATUS_RANK[target] == current_rank:
            return False
        if STATUS_RANK[target] < current_rank:
            raise InvalidStatusTransitionError('waitlist entry', self.status, target)

        self.status = target
        return True

    def is_code_expired(self, now: datetime = None) -> bool:
        if not self.code_expires_at:
            return False
        return (now or datetime.utcnow()) > self.code_expires_at

    @property
    def is_admitted(self) -> bool:
        return self.status in ADMITTED_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'app_id': self.app_id,
            'identity_id': self.identity_id,
            'email': self.email,
            'name': self.name,
            'status': self.status,
            'position': self.position,
            'invitation_code': self.invitation_code,
            'code_expires_at': self.code_expires_at.isoformat() if self.code_expires_at else None,
            'code_used_at': self.code_used_at.isoformat() if self.code_used_at else None,
            'use_count': self.use_count,
            'invited_at': self.invited_at.isoformat() if self.invited_at else None,
            'invited_via': self.invited_via,
            'accepted_at': self.accepted_at.isoformat() if self.accepted_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
