"""
Shared fixtures: a controllable clock, in-memory repositories with the same
atomic semantics as the MongoDB ones, and a fully wired service graph.

Delivery goes through the real ConsoleDeliveryProvider, so tests read the
code a user would have received from ``graph.delivery.sent``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Optional

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from config import JWTSettings, OTPSettings
from infrastructure.cache.store import InMemoryStore
from infrastructure.delivery.console import ConsoleDeliveryProvider
from schemas.models.reset_token import PasswordResetTokenDoc
from schemas.models.session import SessionDoc
from schemas.models.user import UserDoc
from services.abuse_guard import AbuseGuard
from services.auth_service import AuthService
from services.login_issuer import ClientContext, LoginIssuer
from services.otp_service import OTPService
from services.password_reset_service import PasswordResetService
from services.policy import build_purpose_policies, build_rate_rules
from services.session_service import SessionService
from services.token_service import TokenService
from shared.crypto import configure_password_hasher, hash_password
from shared.validators import Identifier

TEST_JWT_SECRET = "test-secret-0123456789-abcdefghijklmnopqrstuvwxyz"
TEST_PASSWORD = "Passw0rd123"
CHROME_MAC_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture(autouse=True, scope="session")
def fast_password_hashing():
    """Cheap argon2 parameters so tests don't spend seconds hashing."""
    configure_password_hasher(time_cost=1, memory_cost=8192)


# ── Clock ────────────────────────────────────────────────────────────────────


class FrozenClock:
    """Wall clock that only moves when a test advances it."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def now(self) -> datetime:
        return self._now

    def time(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


# ── In-memory repositories ───────────────────────────────────────────────────


class FakeUserRepository:
    def __init__(self) -> None:
        self.rows: dict[ObjectId, UserDoc] = {}

    async def find_by_id(self, user_id):
        return self.rows.get(user_id)

    async def find_by_email(self, email):
        return next((u for u in self.rows.values() if u.email == email), None)

    async def find_by_phone(self, phone):
        return next((u for u in self.rows.values() if u.phone == phone), None)

    async def find_by_identifier(self, identifier: Identifier):
        if identifier.kind == "email":
            return await self.find_by_email(identifier.value)
        return await self.find_by_phone(identifier.value)

    async def create(self, user: UserDoc) -> UserDoc:
        for existing in self.rows.values():
            if (user.email and existing.email == user.email) or (
                user.phone and existing.phone == user.phone
            ):
                raise DuplicateKeyError("duplicate key")
        stored = user.model_copy(update={"id": ObjectId()})
        self.rows[stored.id] = stored
        return stored

    async def update_fields(self, user_id, fields) -> bool:
        if user_id not in self.rows:
            return False
        self.rows[user_id] = self.rows[user_id].model_copy(update=fields)
        return True

    async def set_password_hash(self, user_id, password_hash, now) -> bool:
        return await self.update_fields(
            user_id, {"password_hash": password_hash, "updated_at": now}
        )

    async def mark_phone_verified(self, user_id, phone, now) -> bool:
        return await self.update_fields(
            user_id, {"phone": phone, "is_phone_verified": True, "updated_at": now}
        )

    async def record_login(self, user_id, now) -> bool:
        return await self.update_fields(user_id, {"last_login_at": now})


class FakeSessionRepository:
    def __init__(self) -> None:
        self.rows: dict[ObjectId, SessionDoc] = {}

    def _live(self, row: SessionDoc, now: datetime) -> bool:
        return row.expires_at > now

    async def upsert(self, session: SessionDoc) -> SessionDoc:
        for sid, row in self.rows.items():
            if row.token_id == session.token_id:
                stored = session.model_copy(update={"id": sid, "created_at": row.created_at})
                self.rows[sid] = stored
                return stored
        stored = session.model_copy(update={"id": ObjectId()})
        self.rows[stored.id] = stored
        return stored

    async def find_by_token_id(self, token_id):
        return next((r for r in self.rows.values() if r.token_id == token_id), None)

    async def find_live(self, user_id, token_id, now):
        return next(
            (
                r
                for r in self.rows.values()
                if r.user_id == user_id and r.token_id == token_id and self._live(r, now)
            ),
            None,
        )

    async def list_live(self, user_id, now):
        rows = [r for r in self.rows.values() if r.user_id == user_id and self._live(r, now)]
        return sorted(rows, key=lambda r: r.last_active, reverse=True)

    async def rotate(self, user_id, old_token_id, new_token_id, expires_at, now):
        row = await self.find_live(user_id, old_token_id, now)
        if row is None:
            return None
        rotated = row.model_copy(
            update={"token_id": new_token_id, "expires_at": expires_at, "last_active": now}
        )
        self.rows[row.id] = rotated
        return rotated

    async def touch(self, token_id, now) -> bool:
        for sid, row in self.rows.items():
            if row.token_id == token_id and self._live(row, now):
                self.rows[sid] = row.model_copy(update={"last_active": now})
                return True
        return False

    def _delete_where(self, predicate) -> int:
        doomed = [sid for sid, row in self.rows.items() if predicate(row)]
        for sid in doomed:
            del self.rows[sid]
        return len(doomed)

    async def delete_owned(self, session_id, user_id) -> bool:
        return self._delete_where(lambda r: r.id == session_id and r.user_id == user_id) == 1

    async def delete_by_token_id(self, user_id, token_id) -> bool:
        return (
            self._delete_where(lambda r: r.user_id == user_id and r.token_id == token_id)
            == 1
        )

    async def delete_all_except(self, user_id, token_id) -> int:
        return self._delete_where(lambda r: r.user_id == user_id and r.token_id != token_id)

    async def delete_all(self, user_id) -> int:
        return self._delete_where(lambda r: r.user_id == user_id)

    async def delete_expired(self, now) -> int:
        return self._delete_where(lambda r: r.expires_at <= now)


class FakeResetTokenRepository:
    def __init__(self) -> None:
        self.rows: dict[ObjectId, PasswordResetTokenDoc] = {}

    async def create(self, token):
        stored = token.model_copy(update={"id": ObjectId()})
        self.rows[stored.id] = stored
        return stored

    async def find_by_hash(self, token_hash):
        return next((t for t in self.rows.values() if t.token_hash == token_hash), None)

    async def claim(self, token_hash, now):
        for tid, row in self.rows.items():
            if row.token_hash == token_hash and row.used_at is None and row.expires_at > now:
                claimed = row.model_copy(update={"used_at": now})
                self.rows[tid] = claimed
                return claimed
        return None

    async def revoke_unused(self, user_id, now) -> int:
        count = 0
        for tid, row in self.rows.items():
            if row.user_id == user_id and row.used_at is None:
                self.rows[tid] = row.model_copy(update={"used_at": now})
                count += 1
        return count


def wrong_code(code: str) -> str:
    """A well-formed code guaranteed to differ from *code*."""
    return f"{(int(code) + 1) % 10 ** len(code):0{len(code)}d}"


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock.time)


@pytest.fixture
def jwt_settings() -> JWTSettings:
    return JWTSettings(jwt_secret=TEST_JWT_SECRET)


@pytest.fixture
def otp_settings() -> OTPSettings:
    return OTPSettings()


@pytest.fixture
def client_context() -> ClientContext:
    return ClientContext(ip="203.0.113.7", user_agent=CHROME_MAC_UA)


@pytest.fixture
def graph(clock, store, jwt_settings, otp_settings) -> SimpleNamespace:
    """Every service wired together over in-memory backends."""
    users = FakeUserRepository()
    session_rows = FakeSessionRepository()
    reset_rows = FakeResetTokenRepository()
    delivery = ConsoleDeliveryProvider()

    policies = build_purpose_policies(otp_settings)
    guard = AbuseGuard(store, build_rate_rules(otp_settings, policies))
    otp = OTPService(store, guard, delivery, policies, now=clock.now)
    tokens = TokenService(jwt_settings)
    sessions = SessionService(session_rows, now=clock.now)
    login = LoginIssuer(tokens, sessions, users, now=clock.now)
    reset = PasswordResetService(users, reset_rows, otp, login, now=clock.now)
    auth = AuthService(users, tokens, sessions, otp, guard, login, reset, now=clock.now)
    return SimpleNamespace(
        clock=clock,
        store=store,
        users=users,
        session_rows=session_rows,
        reset_rows=reset_rows,
        delivery=delivery,
        guard=guard,
        otp=otp,
        tokens=tokens,
        sessions=sessions,
        login=login,
        reset=reset,
        auth=auth,
        password=TEST_PASSWORD,
        last_code=lambda: delivery.sent[-1][2],
        wrong_code=wrong_code,
    )


@pytest.fixture
def make_user(graph):
    """Insert a user with TEST_PASSWORD and return it."""

    async def _make(
        email: Optional[str] = "admin@example.com",
        phone: Optional[str] = "+8801712345678",
        role: str = "customer",
        password: str = TEST_PASSWORD,
    ) -> UserDoc:
        return await graph.users.create(
            UserDoc(
                email=email,
                phone=phone,
                password_hash=hash_password(password),
                first_name="Test",
                role=role,
                created_at=graph.clock.now(),
            )
        )

    return _make
