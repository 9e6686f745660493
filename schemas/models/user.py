"""
User document model.

Maps to the `users` MongoDB collection. The identity record is owned by the
wider application; this service reads it for authentication and writes the
password hash, verification flags and login timestamps.

At least one of email / phone is present. Both are stored normalised
(lower-cased email, ``+8801XXXXXXXXX`` phone).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import model_validator

from schemas.models.base import MongoBaseModel

ROLE_CUSTOMER = "customer"
ROLE_STAFF = "staff"
ROLE_ADMIN = "admin"


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    email: Optional[str] = None
    phone: Optional[str] = None
    password_hash: Optional[str] = None
    first_name: str = ""
    last_name: Optional[str] = None
    role: str = ROLE_CUSTOMER
    is_email_verified: bool = False
    is_phone_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _require_contact(self) -> "UserDoc":
        if not self.email and not self.phone:
            raise ValueError("a user needs an email or a phone number")
        return self
