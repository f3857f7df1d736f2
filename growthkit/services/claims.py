"""
Referral and invitation claims.

A claim arrives as one opaque string. ``decode_claim`` is the only place that
inspects its shape; everything downstream works on the decoded variants:

    InvitationClaim     INV-XXXXXX invitation code
    ReferralTokenClaim  signed referral token (JWT)
    InvalidClaim        well-formed request, unusable claim

Referral tokens are issued by ``SignatureVerifier.issue`` when a shareable
referral code is exchanged, and carry the code, the app and an expiry.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

import jwt
from flask import current_app

from ..utils.codes import is_invitation_code
from ..utils.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

MAX_CLAIM_LENGTH = 4096
TOKEN_TYPE = 'referral'


@dataclass(frozen=True)
class InvitationClaim:
    code: str


@dataclass(frozen=True)
class ReferralTokenClaim:
    token: str


@dataclass(frozen=True)
class InvalidClaim:
    reason: str


Claim = Union[InvitationClaim, ReferralTokenClaim, InvalidClaim]


def decode_claim(raw) -> Optional[Claim]:
    """
    Classify a raw claim value.

    Returns None when no claim was supplied.

    Raises:
        ValidationError: the claim is not a string or is absurdly long
    """
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError('Claim must be a string', 'claim')
    if len(raw) > MAX_CLAIM_LENGTH:
        raise ValidationError(f'Claim must be at most {MAX_CLAIM_LENGTH} characters', 'claim')

    value = raw.strip()
    if not value:
        return InvalidClaim('empty')

    if is_invitation_code(value.upper()):
        return InvitationClaim(value.upper())

    return ReferralTokenClaim(value)


@dataclass(frozen=True)
class ReferralTokenPayload:
    referral_code: str
    app_id: int
    expires_at: Optional[datetime] = None


class SignatureVerifier:
    """Issues and verifies signed referral tokens (HS256 JWT by default)."""

    def __init__(self, secret: str = None, algorithm: str = None):
        self._secret = secret
        self._algorithm = algorithm

    @property
    def secret(self) -> str:
        secret = self._secret or current_app.config.get('REFERRAL_TOKEN_SECRET')
        if not secret:
            raise ConfigurationError('REFERRAL_TOKEN_SECRET is not configured')
        return secret

    @property
    def algorithm(self) -> str:
        return self._algorithm or current_app.config.get('REFERRAL_TOKEN_ALGORITHM', 'HS256')

    def issue(self, referral_code: str, app_id: int, ttl_seconds: int) -> str:
        now = datetime.utcnow()
        payload = {
            'typ': TOKEN_TYPE,
            'referral_code': referral_code,
            'app_id': app_id,
            'iat': now,
            'exp': now + timedelta(seconds=ttl_seconds),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Optional[ReferralTokenPayload]:
        """
        Verify signature and expiry.

        Returns the payload, or None if the token is unusable for any reason.
        """
        if not token:
            return None

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={'verify_exp': True, 'require': ['exp']},
            )
        except jwt.ExpiredSignatureError:
            logger.info('Referral token expired')
            return None
        except jwt.InvalidTokenError as e:
            logger.info(f'Invalid referral token: {e}')
            return None

        if payload.get('typ') != TOKEN_TYPE:
            logger.info('Referral token has wrong type')
            return None

        referral_code = payload.get('referral_code')
        app_id = payload.get('app_id')
        if not isinstance(referral_code, str) or not isinstance(app_id, int):
            logger.info('Referral token payload is incomplete')
            return None

        exp = payload.get('exp')
        return ReferralTokenPayload(
            referral_code=referral_code,
            app_id=app_id,
            expires_at=datetime.utcfromtimestamp(exp) if isinstance(exp, (int, float)) else None,
        )


# Singleton instance
signature_verifier = SignatureVerifier()


# Claim outcome statuses
REDEEMED = 'redeemed'
REPLAYED = 'replayed'
CAPPED = 'capped'
IGNORED = 'ignored'


@dataclass
class ClaimOutcome:
    """
    Result of applying a claim.

    ``ignored`` and ``capped`` are not errors: the request carrying the claim
    still succeeds, it just earns nothing.
    """
    kind: str  # invitation, referral, master_referral, invalid
    status: str
    reason: Optional[str] = None
    credits_awarded: int = 0
    referrer_credits: int = 0

    @property
    def referred(self) -> bool:
        """True when this claim just created a referral for the requester."""
        return self.kind in ('referral', 'master_referral') and self.status == REDEEMED

    @classmethod
    def ignored(cls, kind: str, reason: str) -> 'ClaimOutcome':
        logger.info(f'Ignoring {kind} claim: {reason}')
        return cls(kind=kind, status=IGNORED, reason=reason)

    def to_dict(self):
        return {
            'type': self.kind,
            'status': self.status,
            'reason': self.reason,
            'creditsAwarded': self.credits_awarded,
        }
