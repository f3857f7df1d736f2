"""
Default growth policy for an app.

Read by services/policy.py, which flattens it into an AppPolicy.
Apps store only the keys they override in their ``settings`` JSON column.
"""

DEFAULT_POLICY = {
    'credits': {
        'referral_credits': 5,        # Awarded to the referrer
        'referred_credits': 3,        # Awarded to the identity that was referred
        'invitation_credits': 5,      # Awarded on invitation code redemption
        'per_day_credits': 3,         # Recurring daily grant
        'first_visit_credits': 5,     # First grant an identity ever receives
        'waitlist_join_credits': 0,   # 0 = no award for joining the waitlist
        'master_referral_credits': 10,
        'name_claim_credits': 2,
        'email_claim_credits': 2,
        'email_verify_credits': 5,
    },
    'referrals': {
        'daily_referral_cap': 10,     # Max successful referrals per referrer per local day
    },
    'invitations': {
        'daily_invite_quota': 10,     # Max invitations per batch run
        'expiry_days': 7,
    },
    # Per-action costs, e.g. {"generate": {"credits_required": 3}}.
    # A "default" entry prices actions not listed here.
    'actions': {},
    'usage': {
        'allow_custom_credits': True,  # Clients may name a cost for unlisted actions
        'max_custom_credits': 100,
    },
    'timezone': 'UTC',                # IANA name; sets where "today" starts
}


def get_policy_with_defaults(settings: dict) -> dict:
    """Merge app settings with defaults."""
    settings = settings or {}
    result = {}
    for key, default_value in DEFAULT_POLICY.items():
        if isinstance(default_value, dict):
            result[key] = {**default_value, **(settings.get(key) or {})}
        else:
            result[key] = settings.get(key, default_value)
    return result
