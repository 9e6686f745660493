"""
Password reset token document model.

Maps to the `password-reset-tokens` collection. token_hash stores
SHA-256(reset_token); the plain token only ever exists in the response to
the client. used_at is None until the token is consumed, and a token is
consumed at most once.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel, PyObjectId


class PasswordResetTokenDoc(MongoBaseModel):
    """Document model for the `password-reset-tokens` collection."""

    token_hash: str
    user_id: PyObjectId
    identifier: str
    created_at: datetime
    expires_at: datetime
    used_at: Optional[datetime] = None
