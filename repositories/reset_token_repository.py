"""Password reset token persistence on the `password-reset-tokens` collection."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.reset_token import PasswordResetTokenDoc

COLLECTION = "password-reset-tokens"


class ResetTokenRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def create(self, token: PasswordResetTokenDoc) -> PasswordResetTokenDoc:
        result = await self._col.insert_one(token.to_mongo())
        return token.model_copy(update={"id": result.inserted_id})

    async def find_by_hash(self, token_hash: str) -> Optional[PasswordResetTokenDoc]:
        doc = await self._col.find_one({"token_hash": token_hash})
        return PasswordResetTokenDoc.from_mongo(doc)

    async def claim(
        self, token_hash: str, now: datetime
    ) -> Optional[PasswordResetTokenDoc]:
        """Mark an unused, unexpired token as used. None if nothing matched."""
        doc = await self._col.find_one_and_update(
            {"token_hash": token_hash, "used_at": None, "expires_at": {"$gt": now}},
            {"$set": {"used_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        return PasswordResetTokenDoc.from_mongo(doc)

    async def revoke_unused(self, user_id: ObjectId, now: datetime) -> int:
        """Retire every outstanding token for *user_id*."""
        result = await self._col.update_many(
            {"user_id": user_id, "used_at": None},
            {"$set": {"used_at": now}},
        )
        return result.modified_count
