"""
Per-app growth policy.

Flattens a GrowthApp row plus its settings JSON (merged over DEFAULT_POLICY)
into an immutable AppPolicy the engine reads for the rest of the request.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..models.app import GrowthApp
from ..utils.exceptions import ValidationError
from ..utils.settings_defaults import get_policy_with_defaults

logger = logging.getLogger(__name__)


def _timezone_name(name) -> str:
    if not isinstance(name, str) or not name:
        return 'UTC'
    if name == 'UTC':
        return name
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r} in app settings, using UTC")
        return 'UTC'
    return name


def _action_costs(actions) -> Dict[str, int]:
    costs = {}
    for name, config in (actions or {}).items():
        if isinstance(config, dict):
            costs[name] = max(1, int(config.get('credits_required') or 1))
    return costs


@dataclass(frozen=True)
class AppPolicy:
    app_id: int
    app_name: str

    # Credit amounts
    referral_credits: int
    referred_credits: int
    invitation_credits: int
    per_day_credits: int
    first_visit_credits: int
    waitlist_join_credits: int
    master_referral_credits: int

    # Limits
    daily_referral_cap: Optional[int]
    daily_invite_quota: int
    invitation_expiry_days: int

    # Profile claims
    name_claim_credits: int = 2
    email_claim_credits: int = 2
    email_verify_credits: int = 5

    # Spending
    action_costs: Dict[str, int] = field(default_factory=dict)
    allow_custom_credits: bool = True
    max_custom_credits: int = 100

    tz_name: str = 'UTC'

    # Switches
    credits_paused: bool = False
    waitlist_enabled: bool = False
    waitlist_enabled_at: Optional[datetime] = None
    auto_invite_enabled: bool = False
    master_referral_code: Optional[str] = None
    domain: Optional[str] = None

    @classmethod
    def from_app(cls, growth_app: GrowthApp) -> 'AppPolicy':
        policy = get_policy_with_defaults(growth_app.settings or {})
        credits = policy['credits']
        usage = policy['usage']
        return cls(
            app_id=growth_app.id,
            app_name=growth_app.name,
            referral_credits=int(credits['referral_credits']),
            referred_credits=int(credits['referred_credits']),
            invitation_credits=int(credits['invitation_credits']),
            per_day_credits=int(credits['per_day_credits']),
            first_visit_credits=int(credits['first_visit_credits']),
            waitlist_join_credits=int(credits['waitlist_join_credits']),
            master_referral_credits=int(credits['master_referral_credits']),
            daily_referral_cap=policy['referrals']['daily_referral_cap'],
            daily_invite_quota=int(policy['invitations']['daily_invite_quota']),
            invitation_expiry_days=int(policy['invitations']['expiry_days']),
            name_claim_credits=int(credits['name_claim_credits']),
            email_claim_credits=int(credits['email_claim_credits']),
            email_verify_credits=int(credits['email_verify_credits']),
            action_costs=_action_costs(policy['actions']),
            allow_custom_credits=bool(usage['allow_custom_credits']),
            max_custom_credits=max(1, int(usage['max_custom_credits'])),
            tz_name=_timezone_name(policy['timezone']),
            credits_paused=bool(growth_app.credits_paused),
            waitlist_enabled=bool(growth_app.waitlist_enabled),
            waitlist_enabled_at=growth_app.waitlist_enabled_at,
            auto_invite_enabled=bool(growth_app.auto_invite_enabled),
            master_referral_code=growth_app.master_referral_code,
            domain=growth_app.domain,
        )

    def is_master_code(self, code: str) -> bool:
        if not self.master_referral_code or not code:
            return False
        return code.strip().upper() == self.master_referral_code.strip().upper()

    @property
    def tz(self) -> tzinfo:
        return timezone.utc if self.tz_name == 'UTC' else ZoneInfo(self.tz_name)

    def local_day(self, now: datetime) -> date:
        """Calendar day in the app's timezone for a naive UTC timestamp."""
        return now.replace(tzinfo=timezone.utc).astimezone(self.tz).date()

    def credits_required(self, action: str, requested=None) -> Tuple[int, str]:
        """
        Cost of one use of ``action`` and where it came from.

        A cost set in the app's policy wins. Otherwise a client-requested
        cost is used (capped at ``max_custom_credits``) when the app allows
        it, else the policy's "default" action, else 1.

        Returns:
            (credits, source) with source 'policy', 'client' or 'default'

        Raises:
            ValidationError: requested cost is not a positive integer
        """
        if action in self.action_costs:
            return self.action_costs[action], 'policy'

        if self.allow_custom_credits and requested is not None:
            if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
                raise ValidationError('creditsRequired must be a positive integer', 'credits_required')
            return min(requested, self.max_custom_credits), 'client'

        return self.action_costs.get('default', 1), 'default'
