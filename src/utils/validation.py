"""
Input validation utilities.

Validates request fields, filenames, nicknames, discount settings and dates.
"""

import re
from datetime import date
from typing import Any, Dict, Optional

from .errors import AppError, ErrorCode

FILENAME_UNSAFE = re.compile(r"[^a-zA-Z0-9._-]")
NICKNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,30}$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

RESERVED_NICKNAMES = frozenset({"admin", "api", "www", "support", "help", "cachao", "system"})
DISCOUNT_TYPES = ("percentage", "fixed")


def require_fields(body: Dict[str, Any], *names: str) -> None:
    """
    Ensure every named field is present and non-empty.

    Raises:
        AppError: Listing the missing fields
    """
    missing = [name for name in names if body.get(name) in (None, "")]
    if missing:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            {"missingFields": missing},
        )


def sanitize_filename(filename: str) -> str:
    """Replace anything outside ``[a-zA-Z0-9._-]`` with underscores."""
    return FILENAME_UNSAFE.sub("_", filename)


def strip_extension(filename: str) -> str:
    """``clip.final.mp4`` -> ``clip.final``."""
    stem, dot, _ = filename.rpartition(".")
    return stem if dot and stem else filename


def normalize_nickname(nickname: str) -> str:
    return nickname.strip().lower()


def is_valid_nickname(nickname: str) -> bool:
    return bool(NICKNAME_PATTERN.match(nickname))


def validate_discount_type(discount_type: Any) -> str:
    """
    Validate discount type is percentage or fixed.

    Raises:
        AppError: If discount type is anything else
    """
    if discount_type not in DISCOUNT_TYPES:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            "discount_type must be 'percentage' or 'fixed'",
            {"discount_type": discount_type},
        )
    return str(discount_type)


def parse_positive_int(value: Any, field: str, minimum: int = 1) -> int:
    """
    Parse an integer that must be at least ``minimum``.

    Raises:
        AppError: If value is not an integer or is too small
    """
    if isinstance(value, bool):
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be an integer")
    if isinstance(value, float) and value != number:
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be an integer")
    if number < minimum:
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be at least {minimum}")
    return number


def parse_non_negative_amount(value: Any, field: str) -> float:
    """Parse a price or discount value that must be >= 0."""
    if isinstance(value, bool):
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be a number")
    if amount < 0:
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must not be negative")
    return amount


def is_iso_date(value: Optional[str]) -> bool:
    """True for a real calendar date in ``YYYY-MM-DD`` form."""
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_email(email: Any) -> str:
    """
    Validate and normalize an email address.

    Raises:
        AppError: If email is missing or malformed
    """
    if not email or not isinstance(email, str):
        raise AppError(ErrorCode.INVALID_INPUT, "Email is required")
    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise AppError(ErrorCode.INVALID_INPUT, "Invalid email address", {"email": email})
    return email
