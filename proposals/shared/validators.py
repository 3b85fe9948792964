"""Shared validation utilities"""

import re
from typing import Any, Optional


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_document_settings(settings: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """
    Validate the settings keys the lifecycle engine reads.

    Other keys are passed through untouched.

    Raises:
        ValueError: If expirationDays or reminderDays is out of range
    """
    if settings is None:
        return settings

    expiration_days = settings.get("expirationDays")
    if expiration_days is not None:
        if isinstance(expiration_days, bool) or not isinstance(expiration_days, int):
            raise ValueError("expirationDays must be an integer")
        if not 1 <= expiration_days <= 365:
            raise ValueError("expirationDays must be between 1 and 365")

    reminder_days = settings.get("reminderDays")
    if reminder_days is not None:
        if not isinstance(reminder_days, list):
            raise ValueError("reminderDays must be a list of integers")
        for day in reminder_days:
            if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= 365:
                raise ValueError("reminderDays entries must be integers between 1 and 365")

    return settings
