"""
Referral Claim Resolver.

Applies a claim carried by an identity request. Invitation codes are handed to
the invitation service; signed referral tokens are resolved here.

Every rejection (bad signature, unknown code, self-referral, already referred)
is reported as an ignored ClaimOutcome, never an error. A referrer over the
daily cap gets a ``capped`` outcome: the request succeeds but nothing is
written.

Exactly-once: ``referrals.referred_id`` is unique, so when two requests race
to refer the same identity one insert fails and its savepoint (credits, daily
counter slot and all) rolls back.
"""
import logging
from datetime import date, datetime
from typing import Optional, Dict, Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.credit import CreditReason
from ..models.identity import Identity
from ..models.referral import Referral, ReferralDailyCounter
from ..utils.codes import is_valid_referral_code
from ..utils.exceptions import NotFoundError, ValidationError
from .audit_service import audit_service
from .claims import (
    ClaimOutcome,
    InvalidClaim,
    InvitationClaim,
    ReferralTokenClaim,
    CAPPED,
    REDEEMED,
    decode_claim,
    signature_verifier,
)
from .identity_service import identity_service
from .invitation_service import invitation_service
from .ledger_service import ledger_service
from .policy import AppPolicy
from .waitlist_service import waitlist_service

logger = logging.getLogger(__name__)


class _DailyCapReached(Exception):
    pass


class ReferralService:
    """Resolves referral and invitation claims."""

    def __init__(self, verifier=None):
        self.verifier = verifier or signature_verifier

    def resolve_claim(
        self,
        policy: AppPolicy,
        identity: Identity,
        raw_claim,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ClaimOutcome]:
        """
        Decode and apply a raw claim. Returns None if no claim was supplied.

        Raises:
            ValidationError: the claim has the wrong shape (not a string, too long)
        """
        claim = decode_claim(raw_claim)
        if claim is None:
            return None

        if isinstance(claim, InvalidClaim):
            return ClaimOutcome.ignored('invalid', claim.reason)

        if isinstance(claim, InvitationClaim):
            return invitation_service.redeem(
                policy, identity, claim.code,
                ip_address=ip_address, user_agent=user_agent, now=now,
            )

        return self.claim_referral(
            policy, identity, claim.token,
            ip_address=ip_address, user_agent=user_agent, now=now,
        )

    # ==================== REFERRAL TOKENS ====================

    def claim_referral(
        self,
        policy: AppPolicy,
        identity: Identity,
        token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ClaimOutcome:
        """Apply a signed referral token for the requesting identity. Does not commit."""
        now = now or datetime.utcnow()

        payload = self.verifier.verify(token)
        if payload is None:
            return ClaimOutcome.ignored('referral', 'invalid_token')
        if payload.app_id != policy.app_id:
            return ClaimOutcome.ignored('referral', 'app_mismatch')

        if self._already_referred(identity.id):
            return ClaimOutcome.ignored('referral', 'already_referred')

        if policy.is_master_code(payload.referral_code):
            return self._claim_master(policy, identity, payload.referral_code, ip_address, user_agent, now)

        referrer = identity_service.find_by_referral_code(policy.app_id, payload.referral_code)
        if not referrer:
            return ClaimOutcome.ignored('referral', 'unknown_code')
        if referrer.id == identity.id:
            return ClaimOutcome.ignored('referral', 'self_referral')

        awards = not policy.credits_paused
        referred_credits = policy.referred_credits if awards else 0
        referrer_credits = policy.referral_credits if awards else 0

        try:
            with db.session.begin_nested():
                if not self._acquire_daily_slot(referrer.id, policy.daily_referral_cap, policy.local_day(now)):
                    raise _DailyCapReached()

                referral = Referral(
                    app_id=policy.app_id,
                    referrer_id=referrer.id,
                    referred_id=identity.id,
                    referral_code=referrer.referral_code,
                    is_master=False,
                    referrer_credits=referrer_credits,
                    referred_credits=referred_credits,
                    claimed_at=now,
                )
                db.session.add(referral)
                db.session.flush()

                if referred_credits > 0:
                    ledger_service.append_credit(
                        identity.id, referred_credits, CreditReason.REFERRAL,
                        {'referral_id': referral.id, 'role': 'referred', 'referrer_id': referrer.id},
                    )
                if referrer_credits > 0:
                    ledger_service.append_credit(
                        referrer.id, referrer_credits, CreditReason.REFERRAL,
                        {'referral_id': referral.id, 'role': 'referrer', 'referred_id': identity.id},
                    )

                waitlist_service.apply_referral(policy, identity, is_master=False, now=now)

                audit_service.log(
                    policy.app_id,
                    'referral.claimed',
                    entity_type='referral',
                    entity_id=referral.id,
                    metadata={
                        'referrer_id': referrer.id,
                        'referred_id': identity.id,
                        'referral_code': referrer.referral_code,
                    },
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
        except _DailyCapReached:
            logger.info(f"Referrer {referrer.id} hit the daily referral cap")
            return ClaimOutcome(kind='referral', status=CAPPED, reason='daily_cap')
        except IntegrityError:
            return ClaimOutcome.ignored('referral', 'already_referred')

        return ClaimOutcome(
            kind='referral',
            status=REDEEMED,
            credits_awarded=referred_credits,
            referrer_credits=referrer_credits,
        )

    def _claim_master(self, policy, identity, code, ip_address, user_agent, now) -> ClaimOutcome:
        credits = policy.master_referral_credits if not policy.credits_paused else 0

        try:
            with db.session.begin_nested():
                referral = Referral(
                    app_id=policy.app_id,
                    referrer_id=None,
                    referred_id=identity.id,
                    referral_code=policy.master_referral_code,
                    is_master=True,
                    referrer_credits=0,
                    referred_credits=credits,
                    claimed_at=now,
                )
                db.session.add(referral)
                db.session.flush()

                if credits > 0:
                    ledger_service.append_credit(
                        identity.id, credits, CreditReason.MASTER_REFERRAL,
                        {'referral_id': referral.id},
                    )

                waitlist_service.apply_referral(policy, identity, is_master=True, now=now)

                audit_service.log(
                    policy.app_id,
                    'referral.master_claimed',
                    entity_type='referral',
                    entity_id=referral.id,
                    metadata={'referred_id': identity.id},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
        except IntegrityError:
            return ClaimOutcome.ignored('master_referral', 'already_referred')

        return ClaimOutcome(kind='master_referral', status=REDEEMED, credits_awarded=credits)

    def _already_referred(self, identity_id: int) -> bool:
        return Referral.query.filter_by(referred_id=identity_id).first() is not None

    def _acquire_daily_slot(self, referrer_id: int, cap: Optional[int], day: date) -> bool:
        """
        Take one of the referrer's referral slots for ``day`` (the app's local date).

        The increment only applies while count < cap, so concurrent claims can
        never push a referrer past the cap.
        """
        if cap is None:
            return True

        counter = ReferralDailyCounter.query.filter_by(referrer_id=referrer_id, day=day).first()
        if not counter:
            try:
                with db.session.begin_nested():
                    db.session.add(ReferralDailyCounter(referrer_id=referrer_id, day=day, count=0))
            except IntegrityError:
                pass  # Created concurrently; the UPDATE below still applies

        acquired = ReferralDailyCounter.query.filter(
            ReferralDailyCounter.referrer_id == referrer_id,
            ReferralDailyCounter.day == day,
            ReferralDailyCounter.count < cap
        ).update(
            {ReferralDailyCounter.count: ReferralDailyCounter.count + 1},
            synchronize_session=False
        )
        return acquired == 1

    # ==================== CODE EXCHANGE ====================

    def exchange_code(self, policy: AppPolicy, referral_code: str) -> Dict[str, Any]:
        """
        Mint a signed claim token for a shareable referral code.

        Master codes get a long-lived token, identity codes a short one.

        Raises:
            ValidationError: malformed code
            NotFoundError: no such code in this app
        """
        if not isinstance(referral_code, str) or not referral_code.strip():
            raise ValidationError('Referral code is required', 'referral_code')
        code = referral_code.strip().upper()

        if policy.is_master_code(code):
            ttl = current_app.config['MASTER_CLAIM_TTL_SECONDS']
            token = self.verifier.issue(policy.master_referral_code, policy.app_id, ttl)
            return {'claim': token, 'type': 'master', 'expires_in': ttl}

        if not is_valid_referral_code(code):
            raise ValidationError('Invalid referral code format', 'referral_code')

        referrer = identity_service.find_by_referral_code(policy.app_id, code)
        if not referrer:
            raise NotFoundError('Referral code', code)

        ttl = current_app.config['REFERRAL_CLAIM_TTL_SECONDS']
        token = self.verifier.issue(referrer.referral_code, policy.app_id, ttl)
        return {'claim': token, 'type': 'referral', 'expires_in': ttl}

    # ==================== STATS ====================

    def get_stats(self, policy: AppPolicy, identity: Identity, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()

        total_referrals = Referral.query.filter_by(referrer_id=identity.id).count()
        credits_earned = db.session.query(
            db.func.coalesce(db.func.sum(Referral.referrer_credits), 0)
        ).filter(Referral.referrer_id == identity.id).scalar()

        counter = ReferralDailyCounter.query.filter_by(
            referrer_id=identity.id, day=policy.local_day(now)
        ).first()

        return {
            'referral_code': identity.referral_code,
            'total_referrals': total_referrals,
            'referrals_today': counter.count if counter else 0,
            'credits_earned': int(credits_earned or 0),
            'was_referred': self._already_referred(identity.id),
        }


# Singleton instance
referral_service = ReferralService()
