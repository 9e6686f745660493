"""
Identifier and password validators — framework-agnostic, pure functions.

Phone numbers are Bangladesh mobile numbers. Accepted input shapes are
``01XXXXXXXXX``, ``8801XXXXXXXXX`` and ``+8801XXXXXXXXX`` (spaces, dashes
and parentheses ignored); the canonical stored form is ``+8801XXXXXXXXX``.
Emails are stored lower-cased.
"""

from __future__ import annotations

import re
from typing import List, NamedTuple, Optional, Tuple

import validators as _validators

_PHONE_STRIP = re.compile(r"[\s\-()]")
_BD_MOBILE = re.compile(r"^(?:\+?880|0)(1[3-9]\d{8})$")


class Identifier(NamedTuple):
    """A normalised login identifier."""

    kind: str  # "email" or "phone"
    value: str


def is_valid_email(email: str) -> bool:
    """Return True if *email* is a syntactically valid address."""
    return bool(email) and _validators.email(email.strip()) is True


def normalize_email(email: str) -> Optional[str]:
    """Return the lower-cased address, or ``None`` when *email* is invalid."""
    if not email or not is_valid_email(email):
        return None
    return email.strip().lower()


def normalize_phone(phone: str) -> Optional[str]:
    """Return *phone* as ``+8801XXXXXXXXX``, or ``None`` when it is not a
    Bangladesh mobile number."""
    if not phone:
        return None
    match = _BD_MOBILE.match(_PHONE_STRIP.sub("", phone))
    if match is None:
        return None
    return f"+880{match.group(1)}"


def is_valid_phone(phone: str) -> bool:
    """Return True if *phone* is a Bangladesh mobile number in any accepted shape."""
    return normalize_phone(phone) is not None


def normalize_identifier(identifier: str) -> Optional[Identifier]:
    """Classify and normalise an email-or-phone login identifier.

    Returns:
        An :class:`Identifier`, or ``None`` when *identifier* is neither a
        valid email nor a valid phone number.
    """
    if not identifier:
        return None
    identifier = identifier.strip()
    if "@" in identifier:
        email = normalize_email(identifier)
        return Identifier("email", email) if email else None
    phone = normalize_phone(identifier)
    return Identifier("phone", phone) if phone else None


def validate_password(password: str, min_length: int = 8) -> Tuple[bool, List[str]]:
    """
    Validate a new account password.

    Returns:
        Tuple[bool, List[str]]: (is_valid, missing_requirements)
    """
    if not password:
        return False, ["Password is required"]

    missing = []

    if len(password) < min_length:
        missing.append(f"At least {min_length} characters")

    if len(password) > 128:
        missing.append("Maximum 128 characters")

    if not re.search(r"[A-Za-z]", password):
        missing.append("At least one letter")

    if not re.search(r"[0-9]", password):
        missing.append("At least one number")

    return len(missing) == 0, missing
