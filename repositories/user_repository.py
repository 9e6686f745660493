"""
Identity persistence on the `users` collection.

Email and phone carry unique indexes; create() lets DuplicateKeyError
propagate so the caller can turn it into a conflict.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.user import UserDoc
from shared.validators import Identifier

COLLECTION = "users"


class UserRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def find_by_id(self, user_id: ObjectId) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"_id": user_id}))

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"email": email}))

    async def find_by_phone(self, phone: str) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"phone": phone}))

    async def find_by_identifier(self, identifier: Identifier) -> Optional[UserDoc]:
        if identifier.kind == "email":
            return await self.find_by_email(identifier.value)
        return await self.find_by_phone(identifier.value)

    async def create(self, user: UserDoc) -> UserDoc:
        doc = user.to_mongo()
        # Sparse unique indexes only skip absent fields, not nulls
        for field in ("email", "phone"):
            if doc.get(field) is None:
                doc.pop(field, None)
        result = await self._col.insert_one(doc)
        return user.model_copy(update={"id": result.inserted_id})

    async def update_fields(self, user_id: ObjectId, fields: dict[str, Any]) -> bool:
        result = await self._col.update_one({"_id": user_id}, {"$set": fields})
        return result.matched_count == 1

    async def set_password_hash(
        self, user_id: ObjectId, password_hash: str, now: datetime
    ) -> bool:
        return await self.update_fields(
            user_id, {"password_hash": password_hash, "updated_at": now}
        )

    async def mark_phone_verified(
        self, user_id: ObjectId, phone: str, now: datetime
    ) -> bool:
        return await self.update_fields(
            user_id, {"phone": phone, "is_phone_verified": True, "updated_at": now}
        )

    async def record_login(self, user_id: ObjectId, now: datetime) -> bool:
        return await self.update_fields(user_id, {"last_login_at": now})
