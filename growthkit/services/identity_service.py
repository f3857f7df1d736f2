"""
Identity Store.

Resolves an (app, fingerprint) pair to exactly one Identity, creating it with a
fresh referral code on first sight. Concurrent first requests for the same
fingerprint converge on a single row through the unique constraint.
"""
import logging
from typing import Tuple

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.identity import Identity
from ..utils.codes import MAX_CODE_ATTEMPTS, generate_referral_code
from ..utils.exceptions import (
    CollisionExhaustionError,
    IdentityNotFoundError,
    ValidationError,
)
from .audit_service import audit_service

logger = logging.getLogger(__name__)

MAX_FINGERPRINT_LENGTH = 256


def validate_fingerprint(fingerprint) -> str:
    if not isinstance(fingerprint, str) or not fingerprint.strip():
        raise ValidationError('Fingerprint is required', 'fingerprint')
    if len(fingerprint) > MAX_FINGERPRINT_LENGTH:
        raise ValidationError(
            f'Fingerprint must be at most {MAX_FINGERPRINT_LENGTH} characters', 'fingerprint'
        )
    return fingerprint


class IdentityService:
    """Service for resolving anonymous identities."""

    def get(self, identity_id: int) -> Identity:
        identity = Identity.query.get(identity_id)
        if not identity:
            raise IdentityNotFoundError(identity_id)
        return identity

    def find(self, app_id: int, fingerprint: str):
        return Identity.query.filter_by(app_id=app_id, fingerprint=fingerprint).first()

    def get_by_fingerprint(self, app_id: int, fingerprint) -> Identity:
        """Existing identity for a fingerprint; never creates one."""
        validate_fingerprint(fingerprint)
        identity = self.find(app_id, fingerprint)
        if not identity:
            raise IdentityNotFoundError()
        return identity

    def find_by_referral_code(self, app_id: int, referral_code: str):
        if not referral_code:
            return None
        return Identity.query.filter_by(
            app_id=app_id,
            referral_code=referral_code.strip().upper()
        ).first()

    def resolve_or_create(
        self,
        app_id: int,
        fingerprint: str,
        ip_address: str = None,
        user_agent: str = None,
    ) -> Tuple[Identity, bool]:
        """
        Return the identity for this fingerprint, creating it if needed.

        Returns:
            (identity, created)

        Raises:
            ValidationError: malformed fingerprint
            CollisionExhaustionError: no free referral code after MAX_CODE_ATTEMPTS
        """
        validate_fingerprint(fingerprint)

        identity = self.find(app_id, fingerprint)
        if identity:
            return identity, False

        for attempt in range(MAX_CODE_ATTEMPTS):
            code = generate_referral_code()
            if Identity.query.filter_by(app_id=app_id, referral_code=code).first():
                logger.info(f"Referral code collision on {code} (attempt {attempt + 1})")
                continue

            identity = Identity(
                app_id=app_id,
                fingerprint=fingerprint,
                referral_code=code,
                credit_balance=0,
            )
            try:
                with db.session.begin_nested():
                    db.session.add(identity)
            except IntegrityError:
                existing = self.find(app_id, fingerprint)
                if existing:
                    return existing, False
                # Lost a race on the referral code itself
                continue

            audit_service.log(
                app_id,
                'fingerprint.created',
                entity_type='identity',
                entity_id=identity.id,
                metadata={'referral_code': code},
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return identity, True

        raise CollisionExhaustionError('referral code', MAX_CODE_ATTEMPTS)


# Singleton instance
identity_service = IdentityService()
