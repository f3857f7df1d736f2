"""
Credit Ledger for GrowthKit.

The ledger is append-only. An identity's balance is the sum of its entries;
``Identity.credit_balance`` is a materialized copy of that sum, bumped with an
atomic UPDATE in the same transaction that inserts each entry so the two can
never drift apart.

Awards are positive entries. Spending an action's cost is a negative
``consumption`` entry, and only goes through while the balance covers it.

Handles:
- Appending credit entries
- Consuming credits for actions
- Balance lookups (materialized and recomputed)
- Consistency verification
- Entry history
"""
from typing import Optional, Dict, Any, List

from ..extensions import db
from ..models.identity import Identity
from ..models.credit import CreditEntry, CreditReason
from ..utils.exceptions import IdentityNotFoundError, InsufficientCreditsError, ValidationError


class LedgerService:
    """Append-only credit ledger."""

    def append_credit(
        self,
        identity_id: int,
        amount: int,
        reason,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditEntry:
        """
        Append a credit entry and move the identity's balance by ``amount``.

        Does not commit; callers wrap this in their own transaction.

        Raises:
            ValidationError: non-integer or zero amount, unknown reason, or a
                sign that does not match the reason (only consumption is negative)
            IdentityNotFoundError: identity does not exist
            InsufficientCreditsError: a consumption larger than the balance
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError('Credit amount must be an integer', 'amount')

        try:
            reason = CreditReason(reason)
        except ValueError:
            raise ValidationError(f'Unknown credit reason: {reason}', 'reason')

        if reason == CreditReason.CONSUMPTION:
            if amount >= 0:
                raise ValidationError('Consumption entries must be negative', 'amount')
        elif amount <= 0:
            raise ValidationError('Credit amount must be positive', 'amount')

        query = Identity.query.filter(Identity.id == identity_id)
        if amount < 0:
            query = query.filter(Identity.credit_balance >= -amount)

        updated = query.update(
            {Identity.credit_balance: Identity.credit_balance + amount},
            synchronize_session=False
        )
        if not updated:
            balance = db.session.query(Identity.credit_balance).filter(Identity.id == identity_id).scalar()
            if balance is None:
                raise IdentityNotFoundError(identity_id)
            raise InsufficientCreditsError(-amount, balance)

        entry = CreditEntry(
            identity_id=identity_id,
            amount=amount,
            reason=reason.value,
            entry_metadata=metadata or {},
        )
        db.session.add(entry)
        db.session.flush()

        # The UPDATE bypassed the ORM; make loaded copies re-read the balance
        identity = db.session.get(Identity, identity_id)
        if identity is not None:
            db.session.expire(identity, ['credit_balance'])

        return entry

    def consume(
        self,
        identity_id: int,
        amount: int,
        action: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditEntry:
        """
        Spend ``amount`` credits on ``action``.

        The balance check and the debit are one conditional UPDATE inside a
        savepoint, so two concurrent spends can never take the balance below
        zero. Does not commit.

        Raises:
            ValidationError: amount is not a positive integer
            InsufficientCreditsError: the balance does not cover ``amount``
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError('Credits to consume must be a positive integer', 'amount')

        with db.session.begin_nested():
            return self.append_credit(
                identity_id,
                -amount,
                CreditReason.CONSUMPTION,
                {'action': action, **(metadata or {})},
            )

    def get_balance(self, identity_id: int) -> int:
        identity = Identity.query.get(identity_id)
        if not identity:
            raise IdentityNotFoundError(identity_id)
        return identity.credit_balance

    def compute_balance(self, identity_id: int) -> int:
        """Recompute the balance from the ledger itself."""
        total = db.session.query(
            db.func.coalesce(db.func.sum(CreditEntry.amount), 0)
        ).filter(CreditEntry.identity_id == identity_id).scalar()
        return int(total or 0)

    def verify_balance(self, identity_id: int) -> Dict[str, Any]:
        balance = self.get_balance(identity_id)
        ledger_sum = self.compute_balance(identity_id)
        return {
            'identity_id': identity_id,
            'balance': balance,
            'ledger_sum': ledger_sum,
            'consistent': balance == ledger_sum,
        }

    def get_history(self, identity_id: int, limit: int = 50, offset: int = 0) -> List[CreditEntry]:
        return CreditEntry.query.filter_by(
            identity_id=identity_id
        ).order_by(
            CreditEntry.created_at.desc(), CreditEntry.id.desc()
        ).offset(offset).limit(limit).all()


# Singleton instance
ledger_service = LedgerService()
