"""
SessionService — the registry of live refresh tokens.

One row per refresh token, keyed by its ``jti``. A refresh token is honoured
only while its row exists and has not expired, so deleting a row revokes the
token immediately.

terminate_all_except() and a concurrent record() for the same user are not
serialised: a session recorded while the delete runs may survive it. Last
write wins and the registry converges on the next terminate call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from bson import ObjectId

from errors import NotFoundError, ValidationError
from infrastructure.geoip import GeoIPService, Location
from repositories.session_repository import SessionRepository
from schemas.models.base import to_object_id
from schemas.models.session import SessionDoc
from shared.datetime_utils import ensure_utc, utcnow
from shared.logging import get_logger, hash_ip
from shared.user_agent import DeviceInfo, parse_user_agent

log = get_logger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    """A session as shown in the "logged-in devices" list."""

    id: str
    device: Optional[str]
    browser: Optional[str]
    os: Optional[str]
    ip_address: str
    location: Optional[str]
    created_at: datetime
    last_active: datetime
    expires_at: datetime
    is_current: bool = False

    @classmethod
    def from_doc(cls, doc: SessionDoc, current_token_id: Optional[str] = None):
        return cls(
            id=str(doc.id),
            device=doc.device,
            browser=doc.browser,
            os=doc.os,
            ip_address=doc.ip_address,
            location=doc.location,
            created_at=ensure_utc(doc.created_at),
            last_active=ensure_utc(doc.last_active),
            expires_at=ensure_utc(doc.expires_at),
            is_current=bool(current_token_id) and doc.token_id == current_token_id,
        )


class SessionService:
    def __init__(
        self,
        repository: SessionRepository,
        geoip: Optional[GeoIPService] = None,
        user_agent_parser: Callable[[Optional[str]], DeviceInfo] = parse_user_agent,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repository
        self._geoip = geoip
        self._parse_user_agent = user_agent_parser
        self._now = now

    def describe_device(self, user_agent: Optional[str]) -> DeviceInfo:
        return self._parse_user_agent(user_agent)

    @staticmethod
    def _user_oid(user_id: Any) -> Optional[ObjectId]:
        return to_object_id(user_id)

    async def record(
        self,
        user_id: Any,
        token_id: str,
        device_info: DeviceInfo,
        ip: Optional[str],
        expires_at: datetime,
    ) -> SessionDoc:
        """Store the session for *token_id*; recording the same token twice updates it."""
        oid = self._user_oid(user_id)
        if oid is None:
            raise ValidationError("Invalid user id", field="user_id")
        if not token_id:
            raise ValidationError("A token id is required", field="token_id")

        location = await self._geoip.locate(ip) if self._geoip else Location()
        now = self._now()
        session = SessionDoc(
            user_id=oid,
            token_id=token_id,
            device=device_info.device,
            browser=device_info.browser,
            os=device_info.os,
            user_agent=device_info.user_agent,
            ip_address=ip or "unknown",
            location=location.location,
            country=location.country,
            city=location.city,
            created_at=now,
            last_active=now,
            expires_at=expires_at,
        )
        stored = await self._repo.upsert(session)
        log.info(
            "session_recorded",
            user_id=str(oid),
            session_id=str(stored.id),
            device=device_info.device,
            ip_hash=hash_ip(ip),
        )
        return stored

    async def list(
        self, user_id: Any, current_token_id: Optional[str] = None
    ) -> list[SessionInfo]:
        """Live sessions for *user_id*, most recently active first."""
        oid = self._user_oid(user_id)
        if oid is None:
            return []
        docs = await self._repo.list_live(oid, self._now())
        return [SessionInfo.from_doc(doc, current_token_id) for doc in docs]

    async def find_live(self, user_id: Any, token_id: str) -> Optional[SessionDoc]:
        oid = self._user_oid(user_id)
        if oid is None or not token_id:
            return None
        return await self._repo.find_live(oid, token_id, self._now())

    async def touch(self, token_id: str) -> bool:
        return await self._repo.touch(token_id, self._now())

    async def rotate(
        self,
        user_id: Any,
        old_token_id: str,
        new_token_id: str,
        expires_at: datetime,
    ) -> Optional[SessionDoc]:
        """Move a live session from *old_token_id* to *new_token_id*.

        Returns None when the old token no longer has a live session, which
        includes losing a race against a concurrent rotation.
        """
        oid = self._user_oid(user_id)
        if oid is None or not old_token_id:
            return None
        rotated = await self._repo.rotate(
            oid, old_token_id, new_token_id, expires_at, self._now()
        )
        if rotated is None:
            log.warning("session_rotation_rejected", user_id=str(oid))
        else:
            log.info("session_rotated", user_id=str(oid), session_id=str(rotated.id))
        return rotated

    async def terminate(self, session_id: Any, user_id: Any) -> None:
        """Delete one of the user's own sessions.

        Raises:
            NotFoundError: the session does not exist, belongs to someone else
                or *session_id* is not a valid id. The three cases look the same.
        """
        sid = to_object_id(session_id)
        oid = self._user_oid(user_id)
        if sid is None or oid is None or not await self._repo.delete_owned(sid, oid):
            raise NotFoundError("Session not found")
        log.info("session_terminated", user_id=str(oid), session_id=str(sid))

    async def terminate_by_token(self, user_id: Any, token_id: str) -> bool:
        oid = self._user_oid(user_id)
        if oid is None or not token_id:
            return False
        deleted = await self._repo.delete_by_token_id(oid, token_id)
        if deleted:
            log.info("session_terminated", user_id=str(oid), reason="logout")
        return deleted

    async def terminate_all_except(
        self, user_id: Any, current_token_id: Optional[str]
    ) -> int:
        """Delete every session of *user_id* except the current one.

        Refuses to run without a current token id rather than deleting the
        caller's own session.
        """
        if not current_token_id:
            raise ValidationError(
                "Current session could not be determined", field="session"
            )
        oid = self._user_oid(user_id)
        if oid is None:
            raise NotFoundError("User not found")
        count = await self._repo.delete_all_except(oid, current_token_id)
        log.info("sessions_terminated", user_id=str(oid), count=count, kept_current=True)
        return count

    async def terminate_all(self, user_id: Any) -> int:
        oid = self._user_oid(user_id)
        if oid is None:
            raise NotFoundError("User not found")
        count = await self._repo.delete_all(oid)
        log.info("sessions_terminated", user_id=str(oid), count=count, kept_current=False)
        return count

    async def purge_expired(self) -> int:
        count = await self._repo.delete_expired(self._now())
        if count:
            log.info("expired_sessions_purged", count=count)
        return count
