"""
Request flows that span several services.

Identity resolution is one transaction:

    resolve/create identity -> apply claim -> entitlement -> daily grant -> commit

A request deadline is checked between steps and before the commit. Running out
of time rolls back everything the request did, so a timed-out request never
leaves partial credits behind.

Completing an action spends its cost from the ledger in a transaction of its
own.
"""
import time
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import current_app

from ..extensions import db
from ..models.app import GrowthApp
from ..models.identity import Identity
from ..utils.exceptions import InsufficientCreditsError, RequestTimeoutError, ValidationError
from .audit_service import audit_service
from .claims import ClaimOutcome
from .daily_grant_service import GrantResult, daily_grant_service
from .identity_service import identity_service
from .ledger_service import ledger_service
from .policy import AppPolicy
from .referral_service import referral_service
from .waitlist_service import Entitlement, WaitlistState, waitlist_service

logger = logging.getLogger(__name__)


class RequestDeadline:
    """Wall-clock budget for one request."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._expires_at = clock() + timeout

    def remaining(self) -> float:
        return self._expires_at - self._clock()

    def check(self, stage: str) -> None:
        if self.remaining() <= 0:
            raise RequestTimeoutError(stage, self.timeout)


@dataclass
class ResolveResult:
    identity: Identity
    created: bool
    waitlist: WaitlistState
    entitlement: Entitlement
    grant: GrantResult
    claim: Optional[ClaimOutcome] = None

    def to_dict(self):
        return {
            'balance': self.identity.credit_balance,
            'referralCode': self.identity.referral_code,
            'created': self.created,
            'waitlist': self.waitlist.to_dict(),
            'entitled': self.entitlement.entitled,
            'grandfathered': self.entitlement.grandfathered,
            'requiresWaitlist': self.entitlement.requires_waitlist,
            'claim': self.claim.to_dict() if self.claim else None,
            'grant': self.grant.to_dict(),
        }


class GrowthService:
    """Orchestrates a full identity resolution."""

    def resolve_identity(
        self,
        growth_app: GrowthApp,
        fingerprint: str,
        claim=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        deadline: Optional[RequestDeadline] = None,
        now: Optional[datetime] = None,
    ) -> ResolveResult:
        """
        Resolve the identity behind a fingerprint and bring its state up to date.

        Commits on success, rolls back on any error.

        Raises:
            ValidationError: malformed fingerprint or claim
            RequestTimeoutError: the deadline passed before commit
        """
        if deadline is None:
            deadline = RequestDeadline(current_app.config.get('REQUEST_TIMEOUT_SECONDS', 10))
        now = now or datetime.utcnow()
        policy = AppPolicy.from_app(growth_app)

        try:
            identity, created = identity_service.resolve_or_create(
                policy.app_id, fingerprint, ip_address=ip_address, user_agent=user_agent
            )
            deadline.check('identity')

            outcome = None
            if claim is not None:
                outcome = referral_service.resolve_claim(
                    policy, identity, claim,
                    ip_address=ip_address, user_agent=user_agent, now=now,
                )
                deadline.check('claim')

            state = waitlist_service.get_state(policy.app_id, identity)
            entitlement = waitlist_service.compute_entitlement(
                policy, identity,
                entry=state.entry,
                just_referred=bool(outcome and outcome.referred),
            )

            grant = daily_grant_service.run(policy, identity, entitlement.entitled, now=now)

            deadline.check('commit')
            db.session.commit()
        except RequestTimeoutError as e:
            db.session.rollback()
            logger.warning(f"Identity resolution for app {policy.app_id} rolled back: {e.message}")
            raise
        except Exception:
            db.session.rollback()
            raise

        return ResolveResult(
            identity=identity,
            created=created,
            waitlist=state,
            entitlement=entitlement,
            grant=grant,
            claim=outcome,
        )

    def complete_action(
        self,
        growth_app: GrowthApp,
        identity: Identity,
        action='default',
        credits_requested=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Charge the identity for one use of ``action`` and commit.

        A refused spend is still written to the audit log before the error
        goes back to the caller.

        Raises:
            ValidationError: malformed action or requested cost
            InsufficientCreditsError: the balance does not cover the cost
        """
        if not isinstance(action, str) or not action.strip() or len(action) > 100:
            raise ValidationError('Action must be a non-empty string of at most 100 characters', 'action')
        action = action.strip()

        policy = AppPolicy.from_app(growth_app)
        required, source = policy.credits_required(action, credits_requested)
        event = {'action': action, 'credits_required': required, 'credit_source': source}

        try:
            entry = ledger_service.consume(identity.id, required, action, {'credit_source': source})
            audit_service.log(
                policy.app_id, 'action.completed',
                entity_type='credit_entry', entity_id=entry.id,
                metadata={**event, 'identity_id': identity.id},
                ip_address=ip_address, user_agent=user_agent,
            )
            db.session.commit()
        except InsufficientCreditsError as e:
            audit_service.log(
                policy.app_id, 'action.rejected',
                entity_type='identity', entity_id=identity.id,
                metadata={**event, 'available': e.available},
                ip_address=ip_address, user_agent=user_agent,
            )
            db.session.commit()
            logger.info(f"Identity {identity.id} cannot afford {action!r}: {e.message}")
            raise
        except Exception:
            db.session.rollback()
            raise

        return {
            'creditsConsumed': required,
            'creditsRequired': required,
            'creditsRemaining': identity.credit_balance,
            'creditSource': source,
        }


# Singleton instance
growth_service = GrowthService()
