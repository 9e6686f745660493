"""
OTP challenge record.

Stored in the cache (not MongoDB) as a flat hash under
``otp:{purpose}:{destination}:{session_id}`` with a TTL equal to the
challenge lifetime. code_hash stores SHA-256(code); the plain code is only
handed to the delivery provider.

Cache hashes are string-valued, so to_cache() / from_cache() convert
timestamps to epoch seconds and back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from shared.datetime_utils import parse_datetime


class OTPChallenge(BaseModel):
    destination: str
    purpose: str
    session_id: str
    code_hash: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = Field(default=0, ge=0)
    attempt_limit: int = Field(default=5, ge=1)
    consumed_at: Optional[datetime] = None

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None

    def to_cache(self) -> dict[str, str]:
        data = {
            "destination": self.destination,
            "purpose": self.purpose,
            "session_id": self.session_id,
            "code_hash": self.code_hash,
            "issued_at": str(self.issued_at.timestamp()),
            "expires_at": str(self.expires_at.timestamp()),
            "attempts": str(self.attempts),
            "attempt_limit": str(self.attempt_limit),
        }
        if self.consumed_at is not None:
            data["consumed_at"] = str(self.consumed_at.timestamp())
        return data

    @classmethod
    def from_cache(cls, data: Optional[dict]) -> Optional["OTPChallenge"]:
        if not data:
            return None
        return cls(
            destination=data["destination"],
            purpose=data["purpose"],
            session_id=data["session_id"],
            code_hash=data["code_hash"],
            issued_at=parse_datetime(data["issued_at"]),
            expires_at=parse_datetime(data["expires_at"]),
            attempts=int(data.get("attempts", 0)),
            attempt_limit=int(data.get("attempt_limit", 5)),
            consumed_at=parse_datetime(data.get("consumed_at")),
        )
