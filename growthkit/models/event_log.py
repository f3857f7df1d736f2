"""
Audit event log.
"""
from datetime import datetime
from ..extensions import db


class EventLog(db.Model):
    """Append-only audit trail of growth events (claims, grants, invitations)."""
    __tablename__ = 'event_logs'

    id = db.Column(db.Integer, primary_key=True)
    app_id = db.Column(db.Integer, db.ForeignKey('apps.id'), nullable=False)

    event = db.Column(db.String(100), nullable=False)  # e.g. referral.claimed
    entity_type = db.Column(db.String(50))
    entity_id = db.Column(db.String(64))
    event_metadata = db.Column('metadata', db.JSON)

    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_event_logs_app_event', 'app_id', 'event'),
    )

    def __repr__(self):
        return f'<EventLog {self.event} {self.entity_type}={self.entity_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'event': self.event,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'metadata': self.event_metadata or {},
            'ip_address': self.ip_address,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
