"""Shared validation utilities"""

import re
import uuid
from typing import Optional

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def validate_time_string(value: Optional[str]) -> str:
    """
    Validate a wall-clock time and normalize it to zero-padded HH:MM.

    Raises:
        ValueError: If the time is missing or not in H:MM / HH:MM format
    """
    if not value or not TIME_PATTERN.match(value.strip()):
        raise ValueError("Invalid time format. Use HH:MM format")

    hours, minutes = value.strip().split(":")
    return f"{int(hours):02d}:{int(minutes):02d}"


def validate_currency(value: Optional[str]) -> str:
    """
    Validate an ISO-4217 style currency code.

    Returns:
        Uppercase three-letter code

    Raises:
        ValueError: If the code is not three letters
    """
    code = (value or "").strip().upper()
    if not CURRENCY_PATTERN.match(code):
        raise ValueError("Currency must be a three-letter code (e.g. AED, USD)")
    return code


def validate_service_categories(categories: Optional[list[str]]) -> list[str]:
    """Lowercase, strip and de-duplicate service categories, keeping order"""
    if not categories:
        raise ValueError("At least one service category is required")

    seen: list[str] = []
    for category in categories:
        normalized = (category or "").strip().lower().replace(" ", "_").replace("-", "_")
        if normalized and normalized not in seen:
            seen.append(normalized)

    if not seen:
        raise ValueError("At least one service category is required")
    return seen
