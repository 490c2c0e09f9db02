from __future__ import annotations

from typing import Optional, Tuple

from email_validator import EmailNotValidError, validate_email as _validate_email


def validate_email(email: Optional[str]) -> Tuple[bool, str]:
    """Syntax-only check (no DNS). Returns (is_valid, message)."""
    if not email or not email.strip():
        return False, "Email is required"
    try:
        _validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        return False, str(e) or "Please enter a valid email address"
    return True, ""


def normalize_email(email: str) -> str:
    return email.strip().lower()
