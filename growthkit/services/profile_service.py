"""
Profile (contact details) for identities.

Handles:
- Upserts from the waitlist and invitation flows
- Name and email claims, each rewarded once per identity
- Email verification through an emailed token
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from urllib.parse import urlencode

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.credit import CreditReason
from ..models.identity import Identity
from ..models.profile import Profile
from ..utils.exceptions import ValidationError
from ..utils.validation import clean_name, normalize_email
from .audit_service import audit_service
from .email_service import email_service
from .ledger_service import ledger_service
from .policy import AppPolicy

logger = logging.getLogger(__name__)


class ProfileService:

    def get(self, app_id: int, identity_id: int) -> Optional[Profile]:
        return Profile.query.filter_by(app_id=app_id, identity_id=identity_id).first()

    def get_or_create(self, app_id: int, identity_id: int) -> Profile:
        profile = self.get(app_id, identity_id)
        if profile:
            return profile

        profile = Profile(app_id=app_id, identity_id=identity_id, email_verified=False)
        try:
            with db.session.begin_nested():
                db.session.add(profile)
        except IntegrityError:
            # Another request created it first
            profile = self.get(app_id, identity_id)
        return profile

    def upsert(
        self,
        app_id: int,
        identity_id: int,
        email: Optional[str] = None,
        name: Optional[str] = None,
        email_verified: Optional[bool] = None,
    ) -> Profile:
        """
        Create or update the identity's profile. Only non-None fields are written.

        A verified email is never downgraded to unverified. A pending
        verification link dies when the email changes or gets verified here.
        """
        profile = self.get_or_create(app_id, identity_id)

        if email is not None:
            if profile.email != email:
                profile.email_verified = False
                profile.verify_token = None
                profile.verify_expires_at = None
            profile.email = email
        if name is not None:
            profile.name = name
        if email_verified:
            profile.email_verified = True
            profile.verify_token = None
            profile.verify_expires_at = None

        db.session.flush()
        return profile

    # ==================== CLAIMS ====================

    def claim_name(
        self,
        policy: AppPolicy,
        identity: Identity,
        name,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record the identity's display name and award ``name_claim_credits``.

        A name can be claimed once; later claims change nothing. Commits.

        Raises:
            ValidationError: name missing, not a string, or the wrong length
        """
        name = clean_name(name)

        try:
            profile = self.get_or_create(policy.app_id, identity.id)
            won = Profile.query.filter(
                Profile.id == profile.id,
                Profile.name.is_(None)
            ).update({Profile.name: name}, synchronize_session=False)

            credits = 0
            if won:
                credits = self._award(policy, identity, policy.name_claim_credits, CreditReason.NAME_CLAIM,
                                      {'name': name})
                audit_service.log(
                    policy.app_id,
                    'profile.name_claimed',
                    entity_type='profile',
                    entity_id=profile.id,
                    metadata={'identity_id': identity.id, 'credits': credits},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if not won:
            return {'claimed': False, 'reason': 'already_claimed', 'credits_awarded': 0}
        return {'claimed': True, 'name': name, 'credits_awarded': credits}

    def claim_email(
        self,
        policy: AppPolicy,
        identity: Identity,
        email,
        now: Optional[datetime] = None,
        email_sender=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Attach an email to the identity and send a verification link.

        ``email_claim_credits`` are awarded the first time the identity shares
        any email. Claiming the same unverified address again re-sends the
        link; switching to a new address resets verification. Commits before
        sending, and a failed send does not fail the claim.

        Raises:
            ValidationError: invalid email, or one already used by another identity
        """
        email = normalize_email(email)
        now = now or datetime.utcnow()

        taken = Profile.query.filter(
            Profile.app_id == policy.app_id,
            Profile.email == email,
            Profile.identity_id != identity.id
        ).first()
        if taken:
            raise ValidationError('Email already associated with another identity', 'email')

        token = secrets.token_urlsafe(32)
        expires_at = now + timedelta(hours=current_app.config['EMAIL_VERIFY_TOKEN_HOURS'])

        try:
            profile = self.get_or_create(policy.app_id, identity.id)
            if profile.email == email and profile.email_verified:
                db.session.commit()
                return {'claimed': False, 'reason': 'already_verified', 'credits_awarded': 0}

            # Setting the first email is the rewarded step; the conditional
            # UPDATE lets only one concurrent claim win it.
            first_email = Profile.query.filter(
                Profile.id == profile.id,
                Profile.email.is_(None)
            ).update({
                Profile.email: email,
                Profile.email_verified: False,
                Profile.verify_token: token,
                Profile.verify_expires_at: expires_at,
            }, synchronize_session=False)

            if first_email:
                db.session.expire(profile)
            else:
                if profile.email != email:
                    profile.email_verified = False
                profile.email = email
                profile.verify_token = token
                profile.verify_expires_at = expires_at

            credits = 0
            if first_email:
                credits = self._award(policy, identity, policy.email_claim_credits, CreditReason.EMAIL_CLAIM,
                                      {'email': email})
            audit_service.log(
                policy.app_id,
                'profile.email_claimed',
                entity_type='profile',
                entity_id=profile.id,
                metadata={'identity_id': identity.id, 'email': email, 'credits': credits},
                ip_address=ip_address,
                user_agent=user_agent,
            )
            name = profile.name
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        result = self.send_verification(policy, email, token, name=name, email_sender=email_sender)
        return {
            'claimed': True,
            'verification_sent': bool(result.get('success')),
            'credits_awarded': credits,
        }

    def verify_email(
        self,
        policy: AppPolicy,
        token,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Confirm an email with the token from its verification link.

        Awards ``email_verify_credits`` unless credits are paused. A token
        works once. Commits.

        Raises:
            ValidationError: missing, unknown or expired token
        """
        if not isinstance(token, str) or not token.strip():
            raise ValidationError('Verification token is required', 'token')
        now = now or datetime.utcnow()

        profile = Profile.query.filter_by(app_id=policy.app_id, verify_token=token).first()
        if not profile:
            raise ValidationError('Invalid verification token', 'token')
        if profile.verify_expires_at and profile.verify_expires_at < now:
            raise ValidationError('Verification token has expired', 'token')

        identity_id = profile.identity_id
        email = profile.email
        try:
            won = Profile.query.filter(
                Profile.id == profile.id,
                Profile.verify_token == token
            ).update({
                Profile.email_verified: True,
                Profile.verify_token: None,
                Profile.verify_expires_at: None,
            }, synchronize_session=False)

            credits = 0
            if won:
                identity = db.session.get(Identity, identity_id)
                credits = self._award(policy, identity, policy.email_verify_credits, CreditReason.EMAIL_VERIFY,
                                      {'email': email})
                audit_service.log(
                    policy.app_id,
                    'profile.email_verified',
                    entity_type='profile',
                    entity_id=profile.id,
                    metadata={'identity_id': identity_id, 'email': email, 'credits': credits},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if not won:
            return {'verified': False, 'reason': 'already_verified', 'credits_awarded': 0}
        return {'verified': True, 'email': email, 'credits_awarded': credits}

    def send_verification(
        self,
        policy: AppPolicy,
        email: str,
        token: str,
        name: Optional[str] = None,
        email_sender=None,
    ) -> Dict[str, Any]:
        """Email the verification link. Failures are logged, never raised."""
        sender = email_sender or email_service
        result = sender.send(email, 'email_verification', {
            'name': name or '',
            'app_name': policy.app_name,
            'verify_link': self.verification_link(policy, email, token),
            'expires_in_hours': current_app.config['EMAIL_VERIFY_TOKEN_HOURS'],
        })
        if not result.get('success'):
            logger.warning(f"Verification email to {email} failed: {result.get('error')}")
        return result

    def verification_link(self, policy: AppPolicy, email: str, token: str) -> str:
        base = policy.domain or ''
        if base and not base.startswith(('http://', 'https://')):
            base = f'https://{base}'
        return f"{base.rstrip('/')}/verify?{urlencode({'token': token, 'email': email})}"

    def _award(self, policy: AppPolicy, identity: Identity, amount: int, reason: CreditReason, metadata) -> int:
        if amount <= 0 or policy.credits_paused:
            return 0
        ledger_service.append_credit(identity.id, amount, reason, metadata)
        return amount


# Singleton instance
profile_service = ProfileService()
