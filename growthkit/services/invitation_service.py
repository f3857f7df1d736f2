"""
Invitation codes for GrowthKit.

Handles:
- Unique INV-XXXXXX code allocation (bounded retries)
- Manual invitations issued by an admin
- Invitation code redemption
- The batch inviter that promotes WAITING entries to INVITED

The batch only writes an invitation once its email went out: a failed delivery
leaves the entry WAITING with no code so the next run picks it up again.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.app import GrowthApp
from ..models.credit import CreditReason
from ..models.identity import Identity
from ..models.waitlist import WaitlistEntry, WaitlistStatus
from ..utils.codes import MAX_CODE_ATTEMPTS, generate_invitation_code
from ..utils.exceptions import CollisionExhaustionError, ValidationError
from ..utils.validation import normalize_email
from .audit_service import audit_service
from .claims import ClaimOutcome, REDEEMED, REPLAYED
from .email_service import email_service
from .ledger_service import ledger_service
from .policy import AppPolicy
from .profile_service import profile_service
from .waitlist_service import waitlist_service

logger = logging.getLogger(__name__)


class InvitationService:
    """Service for invitation codes and the batch inviter."""

    def __init__(self, email_sender=None):
        self._email_sender = email_sender

    @property
    def email_sender(self):
        return self._email_sender or email_service

    def allocate_code(self, app_id: int) -> str:
        """
        Generate an invitation code not yet used in this app.

        Raises:
            CollisionExhaustionError: every attempt collided
        """
        for attempt in range(MAX_CODE_ATTEMPTS):
            code = generate_invitation_code()
            taken = WaitlistEntry.query.filter_by(app_id=app_id, invitation_code=code).first()
            if not taken:
                return code
            logger.info(f"Invitation code collision on {code} (attempt {attempt + 1})")

        raise CollisionExhaustionError('invitation code', MAX_CODE_ATTEMPTS)

    def _expiry(self, policy: AppPolicy, now: datetime, expires_in_days: Optional[int] = None):
        days = expires_in_days
        if days is None:
            days = policy.invitation_expiry_days or current_app.config.get('INVITATION_CODE_EXPIRY_DAYS', 7)
        if not days or days <= 0:
            return None
        return now + timedelta(days=days)

    # ==================== MANUAL INVITATIONS ====================

    def issue_invitation(
        self,
        policy: AppPolicy,
        email: str,
        expires_in_days: Optional[int] = None,
        invited_via: str = 'manual',
        now: Optional[datetime] = None,
    ) -> WaitlistEntry:
        """
        Give an email an invitation code right away, creating its entry if needed.

        Commits. Raises InvalidStatusTransitionError for an already accepted entry.
        """
        now = now or datetime.utcnow()
        email = normalize_email(email)

        try:
            entry, _ = waitlist_service.get_or_create_entry(policy.app_id, email)
            entry.advance_to(WaitlistStatus.INVITED)

            entry.invitation_code = self.allocate_code(policy.app_id)
            entry.code_expires_at = self._expiry(policy, now, expires_in_days)
            entry.code_used_at = None
            entry.invited_at = now
            entry.invited_via = invited_via

            audit_service.log(
                policy.app_id,
                'waitlist.invited',
                entity_type='waitlist_entry',
                entity_id=entry.id,
                metadata={'email': email, 'via': invited_via, 'code': entry.invitation_code},
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Issued invitation {entry.invitation_code} to {email} (app {policy.app_id})")
        return entry

    # ==================== REDEMPTION ====================

    def redeem(
        self,
        policy: AppPolicy,
        identity: Identity,
        code: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ClaimOutcome:
        """
        Redeem an invitation code for the requesting identity.

        Unknown, expired or someone else's codes are ignored silently. The same
        identity redeeming again is an idempotent replay. Does not commit.

        Raises:
            ValidationError: the code is missing or not a string
        """
        if not isinstance(code, str) or not code.strip():
            raise ValidationError('Invitation code is required', 'invitation_code')

        now = now or datetime.utcnow()
        code = code.strip().upper()

        entry = WaitlistEntry.query.filter_by(app_id=policy.app_id, invitation_code=code).first()
        if not entry:
            return ClaimOutcome.ignored('invitation', 'unknown_code')

        if entry.code_used_at is not None:
            return self._used_outcome(entry, identity)

        if entry.is_code_expired(now):
            return ClaimOutcome.ignored('invitation', 'code_expired')

        credits = 0
        with db.session.begin_nested():
            won = WaitlistEntry.query.filter(
                WaitlistEntry.id == entry.id,
                WaitlistEntry.code_used_at.is_(None)
            ).update({
                WaitlistEntry.code_used_at: now,
                WaitlistEntry.identity_id: identity.id,
                WaitlistEntry.use_count: WaitlistEntry.use_count + 1,
            }, synchronize_session=False)

            if won:
                db.session.refresh(entry)
                entry.advance_to(WaitlistStatus.ACCEPTED)
                entry.accepted_at = now

                if policy.invitation_credits > 0 and not policy.credits_paused:
                    ledger_service.append_credit(
                        identity.id,
                        policy.invitation_credits,
                        CreditReason.INVITATION_ACCEPTED,
                        {'waitlist_entry_id': entry.id, 'invitation_code': code},
                    )
                    credits = policy.invitation_credits

                profile_service.upsert(
                    policy.app_id, identity.id, email=entry.email, email_verified=True
                )

                audit_service.log(
                    policy.app_id,
                    'invitation.redeemed',
                    entity_type='waitlist_entry',
                    entity_id=entry.id,
                    metadata={'identity_id': identity.id, 'code': code, 'credits': credits},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )

        if not won:
            # Another request redeemed it between our read and our update
            db.session.refresh(entry)
            return self._used_outcome(entry, identity)

        return ClaimOutcome(kind='invitation', status=REDEEMED, credits_awarded=credits)

    def _used_outcome(self, entry: WaitlistEntry, identity: Identity) -> ClaimOutcome:
        if entry.identity_id == identity.id:
            return ClaimOutcome(kind='invitation', status=REPLAYED, reason='already_redeemed')
        return ClaimOutcome.ignored('invitation', 'code_used')

    # ==================== BATCH INVITER ====================

    def run_batch(
        self,
        growth_app: GrowthApp,
        limit: Optional[int] = None,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Invite the next WAITING entries in line for one app.

        Takes up to ``daily_invite_quota`` entries (or ``limit``) ordered by
        position, then signup time. Each entry is handled on its own: a
        collision or delivery failure is recorded and the batch moves on.

        Returns:
            Summary dict with processed, invited, failed counts and errors
        """
        now = now or datetime.utcnow()
        policy = AppPolicy.from_app(growth_app)
        quota = limit if limit is not None else policy.daily_invite_quota

        results = {
            'app_id': growth_app.id,
            'processed': 0,
            'invited': 0,
            'failed': 0,
            'errors': [],
            'details': [],
            'dry_run': dry_run,
        }
        if quota <= 0:
            return results

        entries = WaitlistEntry.query.filter_by(
            app_id=growth_app.id,
            status=WaitlistStatus.WAITING.value
        ).order_by(
            WaitlistEntry.position.asc(),
            WaitlistEntry.created_at.asc()
        ).limit(quota).all()

        for entry in entries:
            results['processed'] += 1

            if dry_run:
                results['details'].append({'entry_id': entry.id, 'email': entry.email, 'action': 'would_invite'})
                continue

            try:
                code = self.allocate_code(growth_app.id)
            except CollisionExhaustionError as e:
                self._record_failure(results, policy, entry, e.message)
                continue

            expires_at = self._expiry(policy, now)
            send_result = self.email_sender.send(entry.email, 'invitation', {
                'name': entry.name or '',
                'app_name': growth_app.name,
                'invitation_code': code,
                'expires_at': expires_at.strftime('%B %d, %Y') if expires_at else '',
            })
            if not send_result.get('success'):
                self._record_failure(results, policy, entry, send_result.get('error') or 'Delivery failed')
                continue

            try:
                entry.invitation_code = code
                entry.code_expires_at = expires_at
                entry.advance_to(WaitlistStatus.INVITED)
                entry.invited_at = now
                entry.invited_via = 'auto'
                audit_service.log(
                    growth_app.id,
                    'waitlist.invited',
                    entity_type='waitlist_entry',
                    entity_id=entry.id,
                    metadata={'email': entry.email, 'via': 'auto', 'code': code},
                )
                db.session.commit()
            except IntegrityError as e:
                db.session.rollback()
                logger.error(f"Invitation {code} for entry {entry.id} was emailed but not saved: {e}")
                results['failed'] += 1
                results['errors'].append({'entry_id': entry.id, 'email': entry.email, 'error': 'Code conflict'})
                continue

            results['invited'] += 1
            results['details'].append({'entry_id': entry.id, 'email': entry.email, 'code': code})

        return results

    def _record_failure(self, results: Dict[str, Any], policy: AppPolicy, entry: WaitlistEntry, error: str):
        logger.warning(f"Invitation for waitlist entry {entry.id} failed: {error}")
        results['failed'] += 1
        results['errors'].append({'entry_id': entry.id, 'email': entry.email, 'error': error})
        try:
            audit_service.log(
                policy.app_id,
                'waitlist.invite_failed',
                entity_type='waitlist_entry',
                entity_id=entry.id,
                metadata={'email': entry.email, 'error': error},
            )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to record invite failure for entry {entry.id}: {e}")

    def run_all(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run the batch inviter for every active app with auto-invite on."""
        apps = GrowthApp.query.filter_by(is_active=True, auto_invite_enabled=True).all()

        summary = {'apps': 0, 'invited': 0, 'failed': 0, 'results': []}
        for growth_app in apps:
            result = self.run_batch(growth_app, now=now)
            summary['apps'] += 1
            summary['invited'] += result['invited']
            summary['failed'] += result['failed']
            summary['results'].append(result)

        return summary


# Singleton instance
invitation_service = InvitationService()
