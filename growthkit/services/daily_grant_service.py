"""
Daily Grant Scheduler.

Runs on every identity resolution. An entitled identity gets its first-visit
grant once, then a per-day grant whenever at least a full day has passed since
the previous one.

The due check and the write of ``last_daily_grant`` are a single conditional
UPDATE, so two simultaneous requests can never both be granted.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..extensions import db
from ..models.credit import CreditReason
from ..models.identity import Identity
from .ledger_service import ledger_service
from .policy import AppPolicy

logger = logging.getLogger(__name__)

GRANT_INTERVAL = timedelta(days=1)


@dataclass
class GrantResult:
    granted: bool
    amount: int = 0
    reason: Optional[str] = None
    skipped: Optional[str] = None
    next_grant_at: Optional[datetime] = None

    def to_dict(self):
        return {
            'granted': self.granted,
            'amount': self.amount,
            'reason': self.reason,
            'skipped': self.skipped,
            'nextGrantAt': self.next_grant_at.isoformat() if self.next_grant_at else None,
        }


class DailyGrantService:

    def run(
        self,
        policy: AppPolicy,
        identity: Identity,
        entitled: bool,
        now: Optional[datetime] = None,
    ) -> GrantResult:
        """Issue the grant if one is due. Does not commit."""
        now = now or datetime.utcnow()

        if not entitled:
            self._touch(identity, now)
            return GrantResult(granted=False, skipped='not_entitled')
        if policy.credits_paused:
            self._touch(identity, now)
            return GrantResult(granted=False, skipped='credits_paused')

        first_grant = identity.last_daily_grant is None
        if first_grant:
            amount, reason = policy.first_visit_credits, CreditReason.STARTING_GRANT
        else:
            amount, reason = policy.per_day_credits, CreditReason.DAILY_GRANT

        with db.session.begin_nested():
            query = Identity.query.filter(Identity.id == identity.id)
            if first_grant:
                query = query.filter(Identity.last_daily_grant.is_(None))
            else:
                query = query.filter(Identity.last_daily_grant <= now - GRANT_INTERVAL)

            won = query.update(
                {Identity.last_daily_grant: now, Identity.last_active_at: now},
                synchronize_session=False
            )

            if won and amount > 0:
                ledger_service.append_credit(
                    identity.id, amount, reason, {'granted_at': now.isoformat()}
                )

        if not won:
            self._touch(identity, now)

        db.session.refresh(identity)
        next_grant_at = identity.last_daily_grant + GRANT_INTERVAL if identity.last_daily_grant else None

        if not won:
            return GrantResult(granted=False, skipped='not_due', next_grant_at=next_grant_at)

        logger.info(f"Granted {amount} {reason.value} credits to identity {identity.id}")
        return GrantResult(
            granted=amount > 0,
            amount=amount,
            reason=reason.value,
            next_grant_at=next_grant_at,
        )

    def _touch(self, identity: Identity, now: datetime) -> None:
        Identity.query.filter(Identity.id == identity.id).update(
            {Identity.last_active_at: now},
            synchronize_session=False
        )
        db.session.expire(identity, ['last_active_at'])


# Singleton instance
daily_grant_service = DailyGrantService()
