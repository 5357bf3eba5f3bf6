import re
from typing import Optional, List

from services.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Digits with optional leading +, spaces, dashes and parentheses
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{7,20}$")

PASSWORD_MIN_LENGTH = 6


def clean_str(value: Optional[str]) -> Optional[str]:
    """Trim a string; blank strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_RE.match(phone))


def password_errors(password: str) -> List[str]:
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if not re.search(r"[A-Za-z]", password):
        errors.append("Password must contain at least one letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    return errors


def require_non_negative(value: Optional[float], label: str):
    if value is not None and value < 0:
        raise ValidationError(f"{label} cannot be negative")


def check_contact(email: Optional[str], phone: Optional[str]):
    if email and not is_valid_email(email):
        raise ValidationError("Please provide a valid email address")
    if phone and not is_valid_phone(phone):
        raise ValidationError("Please provide a valid phone number")
