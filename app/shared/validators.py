"""Shared validation utilities"""

import re
from datetime import datetime
from typing import Optional

GENDERS = {"M", "F", "O"}
BLOOD_TYPES = {"A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"}


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to digits with an optional leading +.

    Raises:
        ValueError: If fewer than 7 or more than 15 digits remain
    """
    if not phone:
        return phone

    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)
    if not 7 <= len(digits) <= 15:
        raise ValueError("Phone number must have between 7 and 15 digits")

    return f"+{digits}" if phone.startswith("+") else digits


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_required_text(value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValueError("must not be empty")
    return value.strip()


def validate_gender(gender: Optional[str]) -> Optional[str]:
    if gender is None:
        return gender
    gender = gender.strip().upper()
    if gender not in GENDERS:
        raise ValueError(f"gender must be one of {sorted(GENDERS)}")
    return gender


def validate_blood_type(blood_type: Optional[str]) -> Optional[str]:
    if not blood_type:
        return None
    blood_type = blood_type.strip().upper()
    if blood_type not in BLOOD_TYPES:
        raise ValueError("Invalid blood type")
    return blood_type


def naive_local_time(value: Optional[datetime]) -> Optional[datetime]:
    """
    Clinic times are wall-clock local times stored without a timezone.
    An offset sent by the client (Z, +00:00, -05:00) is dropped, not converted.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.replace(tzinfo=None)
