"""
Session persistence on the `user-sessions` collection.

Every write that depends on the current state of a row (rotation, touch,
owned delete) carries that state in its filter, so the check and the write
happen in one server-side operation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.session import SessionDoc

COLLECTION = "user-sessions"


class SessionRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def upsert(self, session: SessionDoc) -> SessionDoc:
        """Insert the session, or refresh the row that already holds its token id."""
        fields = session.to_mongo()
        created_at = fields.pop("created_at")
        doc = await self._col.find_one_and_update(
            {"token_id": session.token_id},
            {"$set": fields, "$setOnInsert": {"created_at": created_at}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return SessionDoc.from_mongo(doc)

    async def find_by_token_id(self, token_id: str) -> Optional[SessionDoc]:
        return SessionDoc.from_mongo(await self._col.find_one({"token_id": token_id}))

    async def find_live(
        self, user_id: ObjectId, token_id: str, now: datetime
    ) -> Optional[SessionDoc]:
        doc = await self._col.find_one(
            {"user_id": user_id, "token_id": token_id, "expires_at": {"$gt": now}}
        )
        return SessionDoc.from_mongo(doc)

    async def list_live(self, user_id: ObjectId, now: datetime) -> list[SessionDoc]:
        cursor = self._col.find(
            {"user_id": user_id, "expires_at": {"$gt": now}}
        ).sort("last_active", DESCENDING)
        return [SessionDoc.from_mongo(doc) async for doc in cursor]

    async def rotate(
        self,
        user_id: ObjectId,
        old_token_id: str,
        new_token_id: str,
        expires_at: datetime,
        now: datetime,
    ) -> Optional[SessionDoc]:
        """Swap the token id of a live session; None when no row matched."""
        doc = await self._col.find_one_and_update(
            {
                "user_id": user_id,
                "token_id": old_token_id,
                "expires_at": {"$gt": now},
            },
            {
                "$set": {
                    "token_id": new_token_id,
                    "expires_at": expires_at,
                    "last_active": now,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        return SessionDoc.from_mongo(doc)

    async def touch(self, token_id: str, now: datetime) -> bool:
        result = await self._col.update_one(
            {"token_id": token_id, "expires_at": {"$gt": now}},
            {"$set": {"last_active": now}},
        )
        return result.matched_count == 1

    async def delete_owned(self, session_id: ObjectId, user_id: ObjectId) -> bool:
        result = await self._col.delete_one({"_id": session_id, "user_id": user_id})
        return result.deleted_count == 1

    async def delete_by_token_id(self, user_id: ObjectId, token_id: str) -> bool:
        result = await self._col.delete_one({"user_id": user_id, "token_id": token_id})
        return result.deleted_count == 1

    async def delete_all_except(self, user_id: ObjectId, token_id: str) -> int:
        result = await self._col.delete_many(
            {"user_id": user_id, "token_id": {"$ne": token_id}}
        )
        return result.deleted_count

    async def delete_all(self, user_id: ObjectId) -> int:
        result = await self._col.delete_many({"user_id": user_id})
        return result.deleted_count

    async def delete_expired(self, now: datetime) -> int:
        result = await self._col.delete_many({"expires_at": {"$lte": now}})
        return result.deleted_count
