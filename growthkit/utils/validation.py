"""
Input checks shared by the waitlist, profile and invitation flows.
"""
import re

from .exceptions import ValidationError

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
UNSAFE_NAME_CHARS = re.compile(r'[<>]')

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100


def normalize_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        raise ValidationError('A valid email address is required', 'email')
    return email.strip().lower()


def clean_name(name) -> str:
    """Strip markup characters and surrounding whitespace from a display name."""
    if not isinstance(name, str):
        raise ValidationError('Name must be a string', 'name')
    cleaned = UNSAFE_NAME_CHARS.sub('', name).strip()
    if not NAME_MIN_LENGTH <= len(cleaned) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f'Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters', 'name'
        )
    return cleaned


def optional_name(name):
    """Like clean_name, but a missing or blank name is simply None."""
    if name is None or (isinstance(name, str) and not name.strip()):
        return None
    return clean_name(name)
