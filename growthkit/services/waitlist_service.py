"""
Waitlist Admission for GrowthKit.

Tracks each email's admission state (WAITING -> INVITED -> ACCEPTED, never
backwards) and decides per request whether an identity may use the app.

Handles:
- Joining the waitlist (position assignment, profile, optional credits)
- Waitlist state lookup for an identity
- Entitlement (including grandfathering of pre-waitlist identities)
- Admission advances triggered by referral claims
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.credit import CreditReason
from ..models.identity import Identity
from ..models.profile import Profile
from ..models.referral import Referral
from ..models.waitlist import WaitlistEntry, WaitlistStatus
from ..utils.codes import MAX_CODE_ATTEMPTS
from ..utils.exceptions import CollisionExhaustionError, ValidationError
from ..utils.validation import normalize_email, optional_name
from .audit_service import audit_service
from .email_service import email_service
from .ledger_service import ledger_service
from .policy import AppPolicy
from .profile_service import profile_service

logger = logging.getLogger(__name__)

NO_ENTRY = 'NONE'


@dataclass
class WaitlistState:
    status: str
    position: Optional[int] = None
    entry: Optional[WaitlistEntry] = None

    def to_dict(self):
        return {'status': self.status, 'position': self.position}


@dataclass
class Entitlement:
    entitled: bool
    grandfathered: bool = False
    reason: Optional[str] = None

    @property
    def requires_waitlist(self) -> bool:
        return not self.entitled


class WaitlistService:
    """Service for waitlist admission."""

    def find_entry(self, app_id: int, identity: Identity) -> Optional[WaitlistEntry]:
        """Entry linked to the identity, else the one matching its profile email."""
        entry = WaitlistEntry.query.filter_by(app_id=app_id, identity_id=identity.id).first()
        if entry:
            return entry

        profile = Profile.query.filter_by(app_id=app_id, identity_id=identity.id).first()
        if profile and profile.email:
            return WaitlistEntry.query.filter_by(app_id=app_id, email=profile.email).first()
        return None

    def get_state(self, app_id: int, identity: Identity) -> WaitlistState:
        entry = self.find_entry(app_id, identity)
        if not entry:
            return WaitlistState(status=NO_ENTRY)
        return WaitlistState(status=entry.status, position=entry.position, entry=entry)

    def compute_entitlement(
        self,
        policy: AppPolicy,
        identity: Identity,
        entry: Optional[WaitlistEntry] = None,
        just_referred: bool = False,
    ) -> Entitlement:
        """
        Decide whether the identity may use the app right now.

        Computed on every request and never stored.
        """
        if not policy.waitlist_enabled:
            return Entitlement(entitled=True, reason='waitlist_disabled')

        if (
            policy.waitlist_enabled_at
            and identity.created_at
            and identity.created_at < policy.waitlist_enabled_at
        ):
            return Entitlement(entitled=True, grandfathered=True, reason='grandfathered')

        if entry is None:
            entry = self.find_entry(policy.app_id, identity)
        if entry and entry.is_admitted:
            return Entitlement(entitled=True, reason=f'waitlist_{entry.status.lower()}')

        if just_referred or self._was_referred(identity.id):
            return Entitlement(entitled=True, reason='referred')

        return Entitlement(entitled=False, reason='waitlist')

    def _was_referred(self, identity_id: int) -> bool:
        return Referral.query.filter_by(referred_id=identity_id).first() is not None

    def next_position(self, app_id: int) -> int:
        current = db.session.query(
            db.func.max(WaitlistEntry.position)
        ).filter(WaitlistEntry.app_id == app_id).scalar()
        return (current or 0) + 1

    def get_or_create_entry(
        self,
        app_id: int,
        email: str,
        name: Optional[str] = None,
        identity_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """
        Find the entry for this email or append a new WAITING one at the end.

        Returns:
            (entry, created)

        Raises:
            CollisionExhaustionError: lost the position race MAX_CODE_ATTEMPTS times
        """
        entry = WaitlistEntry.query.filter_by(app_id=app_id, email=email).first()
        if entry:
            return entry, False

        for attempt in range(MAX_CODE_ATTEMPTS):
            entry = WaitlistEntry(
                app_id=app_id,
                identity_id=identity_id,
                email=email,
                name=name,
                status=WaitlistStatus.WAITING.value,
                position=self.next_position(app_id),
                use_count=0,
                entry_metadata=metadata or {},
            )
            try:
                with db.session.begin_nested():
                    db.session.add(entry)
            except IntegrityError:
                existing = WaitlistEntry.query.filter_by(app_id=app_id, email=email).first()
                if existing:
                    return existing, False
                logger.info(f"Waitlist position collision for app {app_id} (attempt {attempt + 1})")
                continue
            return entry, True

        raise CollisionExhaustionError('waitlist position', MAX_CODE_ATTEMPTS)

    def join(
        self,
        policy: AppPolicy,
        identity: Identity,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Put the identity's email on the waitlist and commit.

        Re-joining with an email already on the list returns the existing
        entry without awarding anything.
        """
        if not policy.waitlist_enabled:
            raise ValidationError('Waitlist is not enabled for this app')

        email = normalize_email(email)
        name = optional_name(name)

        try:
            entry, created = self.get_or_create_entry(
                policy.app_id, email, name=name, identity_id=identity.id, metadata=metadata
            )
            if entry.identity_id is None:
                entry.identity_id = identity.id

            profile_service.upsert(policy.app_id, identity.id, email=email, name=name)

            credits_awarded = 0
            if created:
                if policy.waitlist_join_credits > 0 and not policy.credits_paused:
                    ledger_service.append_credit(
                        identity.id,
                        policy.waitlist_join_credits,
                        CreditReason.WAITLIST_JOIN,
                        {'waitlist_entry_id': entry.id},
                    )
                    credits_awarded = policy.waitlist_join_credits

                audit_service.log(
                    policy.app_id,
                    'waitlist.joined',
                    entity_type='waitlist_entry',
                    entity_id=entry.id,
                    metadata={'email': email, 'position': entry.position},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )

            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return {
            'entry': entry,
            'already_joined': not created,
            'credits_awarded': credits_awarded,
        }

    def send_confirmation(self, policy: AppPolicy, entry: WaitlistEntry, email_sender=None) -> Dict[str, Any]:
        """Email the join confirmation. Failures are logged, never raised."""
        sender = email_sender or email_service
        result = sender.send(entry.email, 'waitlist_confirmation', {
            'name': entry.name or '',
            'app_name': policy.app_name,
            'position': entry.position,
        })
        if not result.get('success'):
            logger.warning(f"Waitlist confirmation to {entry.email} failed: {result.get('error')}")
        return result

    def apply_referral(
        self,
        policy: AppPolicy,
        identity: Identity,
        is_master: bool,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Advance the requester's entry after a successful referral claim.

        Master codes admit WAITING entries; any claim accepts an INVITED one.
        Returns the new status, or None if nothing changed.
        """
        entry = self.find_entry(policy.app_id, identity)
        if not entry:
            return None

        now = now or datetime.utcnow()
        if entry.status == WaitlistStatus.WAITING.value and is_master:
            entry.advance_to(WaitlistStatus.INVITED)
            entry.invited_at = now
            entry.invited_via = 'referral'
        elif entry.status == WaitlistStatus.INVITED.value:
            entry.advance_to(WaitlistStatus.ACCEPTED)
            entry.accepted_at = now
        else:
            return None

        if entry.identity_id is None:
            entry.identity_id = identity.id
        db.session.flush()
        return entry.status


# Singleton instance
waitlist_service = WaitlistService()
