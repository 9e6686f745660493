"""
Session document model.

Maps to the `user-sessions` MongoDB collection. One document per live
refresh token; `token_id` is the refresh token's `jti` claim and is swapped
in place whenever the refresh token is rotated.

A session is live while `expires_at` is in the future and the document
exists. Termination deletes the document.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel, PyObjectId


class SessionDoc(MongoBaseModel):
    """Document model for the `user-sessions` collection."""

    user_id: PyObjectId
    token_id: str
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: str = "unknown"
    location: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    created_at: datetime
    last_active: datetime
    expires_at: datetime
