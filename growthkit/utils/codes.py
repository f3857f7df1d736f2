"""
Shareable code formats.

Referral codes:    GROWTH-1A2B3C  (6 uppercase hex characters)
Invitation codes:  INV-7KQ2MX     (6 characters without 0/O/I lookalikes)
"""
import re
import secrets

# Retries before a code generator gives up on collisions
MAX_CODE_ATTEMPTS = 5

REFERRAL_CODE_PREFIX = 'GROWTH-'
REFERRAL_CODE_PATTERN = re.compile(r'^GROWTH-[A-F0-9]{6}$', re.IGNORECASE)

INVITATION_CODE_PREFIX = 'INV-'
INVITATION_CODE_ALPHABET = '123456789ABCDEFGHJKLMNPQRSTUVWXYZ'
INVITATION_CODE_LENGTH = 6
INVITATION_CODE_PATTERN = re.compile(r'^INV-[123456789ABCDEFGHJKLMNPQRSTUVWXYZ]{6}$')


def generate_referral_code() -> str:
    return REFERRAL_CODE_PREFIX + secrets.token_hex(3).upper()


def is_valid_referral_code(code) -> bool:
    return isinstance(code, str) and bool(REFERRAL_CODE_PATTERN.match(code))


def generate_invitation_code() -> str:
    suffix = ''.join(secrets.choice(INVITATION_CODE_ALPHABET) for _ in range(INVITATION_CODE_LENGTH))
    return INVITATION_CODE_PREFIX + suffix


def is_invitation_code(value) -> bool:
    return isinstance(value, str) and bool(INVITATION_CODE_PATTERN.match(value))
