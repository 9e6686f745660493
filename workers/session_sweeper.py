"""
Expired-session sweeper.

MongoDB's TTL monitor removes expired sessions eventually; this worker
deletes them on a fixed interval so the "devices" list and the collection
size stay tight between TTL passes. Refresh handling never depends on it:
expired rows are filtered out at read time.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from config import AppSettings
from repositories import session_repository
from repositories.indexes import ensure_indexes
from repositories.session_repository import SessionRepository
from services.session_service import SessionService
from shared.logging import get_logger

log = get_logger(__name__)


async def sweep_once(sessions: SessionService) -> int:
    try:
        return await sessions.purge_expired()
    except PyMongoError as e:
        log.error("session_sweep_failed", error=str(e), error_type=type(e).__name__)
        return 0


async def run_sweeper(
    settings: AppSettings,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """Sweep until *stop* is set (forever when no event is given)."""
    stop = stop or asyncio.Event()
    client: AsyncMongoClient = AsyncMongoClient(settings.db.mongodb_uri, tz_aware=True)
    db = client[settings.db.db_name]
    await ensure_indexes(db)
    sessions = SessionService(SessionRepository(db[session_repository.COLLECTION]))
    interval = settings.session_sweep_interval_seconds
    log.info("session_sweeper_started", interval_seconds=interval)

    try:
        while not stop.is_set():
            await sweep_once(sessions)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        await client.close()
        log.info("session_sweeper_stopped")
