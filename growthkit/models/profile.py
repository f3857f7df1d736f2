"""
Profile model.
Contact details an identity has shared (waitlist signup, profile claims,
invitation redemption).
"""
from datetime import datetime
from ..extensions import db


class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, primary_key=True)
    app_id = db.Column(db.Integer, db.ForeignKey('apps.id'), nullable=False)
    identity_id = db.Column(db.Integer, db.ForeignKey('identities.id'), nullable=False)

    email = db.Column(db.String(255))
    name = db.Column(db.String(200))
    email_verified = db.Column(db.Boolean, default=False)

    # Pending email verification
    verify_token = db.Column(db.String(64))
    verify_expires_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('app_id', 'identity_id', name='uq_profiles_app_identity'),
        db.Index('ix_profiles_app_email', 'app_id', 'email'),
        db.Index('ix_profiles_app_verify_token', 'app_id', 'verify_token'),
    )

    identity = db.relationship('Identity', backref=db.backref('profile', uselist=False))

    def __repr__(self):
        return f'<Profile identity={self.identity_id} {self.email}>'

    def to_dict(self):
        return {
            'identity_id': self.identity_id,
            'email': self.email,
            'name': self.name,
            'email_verified': self.email_verified,
        }
