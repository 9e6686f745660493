"""
MongoDB index setup, run once from the application lifespan and the
sweeper worker.

TTL indexes let MongoDB drop expired sessions and reset tokens on its own;
the sweeper covers the gap between expiry and the TTL monitor's next pass.
"""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from repositories import reset_token_repository, session_repository, user_repository
from shared.logging import get_logger

log = get_logger(__name__)


async def ensure_indexes(db: AsyncDatabase) -> None:
    try:
        users = db[user_repository.COLLECTION]
        await users.create_index([("email", ASCENDING)], unique=True, sparse=True)
        await users.create_index([("phone", ASCENDING)], unique=True, sparse=True)

        sessions = db[session_repository.COLLECTION]
        await sessions.create_index([("token_id", ASCENDING)], unique=True)
        await sessions.create_index(
            [("user_id", ASCENDING), ("last_active", DESCENDING)]
        )
        await sessions.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

        reset_tokens = db[reset_token_repository.COLLECTION]
        await reset_tokens.create_index([("token_hash", ASCENDING)], unique=True)
        await reset_tokens.create_index([("user_id", ASCENDING)])
        await reset_tokens.create_index(
            [("expires_at", ASCENDING)], expireAfterSeconds=0
        )
    except PyMongoError as e:
        log.error("mongo_index_setup_failed", error=str(e), error_type=type(e).__name__)
        return
    log.info("mongo_indexes_ensured")
