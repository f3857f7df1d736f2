"""
Database models for GrowthKit.
Anonymous identities, the credit ledger, referrals and waitlist admission.
"""
from .app import GrowthApp
from .identity import Identity
from .credit import CreditEntry, CreditReason
from .referral import Referral, ReferralDailyCounter
from .waitlist import WaitlistEntry, WaitlistStatus, ADMITTED_STATUSES
from .profile import Profile
from .event_log import EventLog

__all__ = [
    'GrowthApp',
    'Identity',
    'CreditEntry',
    'CreditReason',
    'Referral',
    'ReferralDailyCounter',
    'WaitlistEntry',
    'WaitlistStatus',
    'ADMITTED_STATUSES',
    'Profile',
    'EventLog',
]
