"""
OTPService — issues and verifies one-time codes.

One challenge exists per (destination, purpose, session_id). Issuing again
overwrites the stored record, so an earlier code stops working immediately.
Only SHA-256(code) is stored; the plain code goes to the delivery provider
and nowhere else.

Challenge lifecycle:

    Active ──verify ok──────────────▶ Verified (consumed_at set)
    Active ──TTL elapsed────────────▶ Expired (record gone)
    Active ──attempt > limit────────▶ AttemptsExceeded
    Active ──issue for same key─────▶ superseded

Every step of verify() that mutates the record is a single atomic store
operation, so two concurrent verifications can never both succeed and no
attempt goes uncounted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Mapping, Optional, Union

from errors import (
    AttemptsExceededError,
    ConflictError,
    ExpiredError,
    InvalidCredentialError,
    ValidationError,
)
from infrastructure.cache.store import KeyValueStore
from infrastructure.delivery.protocol import DeliveryProvider
from schemas.models.otp import OTPChallenge
from services.abuse_guard import AbuseGuard
from services.policy import Purpose, PurposePolicy
from shared.crypto import digests_match, hash_token
from shared.datetime_utils import utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger, mask_destination

log = get_logger(__name__)


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"


@dataclass(frozen=True)
class ChallengeIssued:
    expires_at: datetime
    expires_in: int
    attempts_remaining: int


@dataclass(frozen=True)
class VerificationResult:
    status: VerificationStatus
    attempts: int = 0
    attempts_remaining: int = 0

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED


@dataclass(frozen=True)
class ChallengeStatus:
    verified: bool
    expires_at: Optional[datetime] = None
    attempts_remaining: int = 0


def _as_purpose(purpose: Union[Purpose, str]) -> Purpose:
    try:
        return Purpose(purpose)
    except ValueError:
        raise ValidationError(f"Unknown OTP purpose: {purpose}", field="purpose")


class OTPService:
    def __init__(
        self,
        store: KeyValueStore,
        guard: AbuseGuard,
        delivery: DeliveryProvider,
        policies: Mapping[Purpose, PurposePolicy],
        code_length: int = 6,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._guard = guard
        self._delivery = delivery
        self._policies = policies
        self._code_length = code_length
        self._now = now

    @staticmethod
    def _key(destination: str, purpose: Purpose, session_id: str) -> str:
        return f"otp:{purpose.value}:{destination}:{session_id}"

    @staticmethod
    def _require_session_id(session_id: Optional[str]) -> str:
        if not session_id or not session_id.strip():
            raise ValidationError("A session id is required", field="session_id")
        return session_id.strip()

    def ttl_seconds(self, purpose: Union[Purpose, str]) -> int:
        """Lifetime of a challenge issued for *purpose*."""
        return self._policies[_as_purpose(purpose)].ttl_seconds

    async def charge_send(
        self, rate_key: str, purpose: Union[Purpose, str], session_id: str
    ) -> None:
        """Validate and count a send like issue() does, without sending anything."""
        purpose = _as_purpose(purpose)
        self._require_session_id(session_id)
        await self._guard.require(rate_key, purpose)

    async def issue(
        self,
        destination: str,
        purpose: Union[Purpose, str],
        session_id: str,
        rate_key: Optional[str] = None,
    ) -> ChallengeIssued:
        """Send a fresh code to *destination*, replacing any earlier challenge.

        Sends are counted against *rate_key*, the destination by default.

        Raises:
            ValidationError: unknown purpose or missing session id.
            RateLimitError: the send ceiling for (rate_key, purpose) is hit.
        """
        purpose = _as_purpose(purpose)
        session_id = self._require_session_id(session_id)
        policy = self._policies[purpose]

        await self._guard.require(rate_key or destination, purpose)

        code = generate_otp_code(self._code_length)
        issued_at = self._now()
        challenge = OTPChallenge(
            destination=destination,
            purpose=purpose.value,
            session_id=session_id,
            code_hash=hash_token(code),
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=policy.ttl_seconds),
            attempts=0,
            attempt_limit=policy.attempt_limit,
        )
        await self._store.replace_hash(
            self._key(destination, purpose, session_id),
            challenge.to_cache(),
            policy.ttl_seconds,
        )
        log.info(
            "otp_issued",
            destination=mask_destination(destination),
            purpose=purpose.value,
            expires_in=policy.ttl_seconds,
        )

        # Delivery failure leaves the challenge valid for its TTL
        result = await self._delivery.send(destination, purpose.value, code)
        if not result.accepted:
            log.warning(
                "otp_delivery_failed",
                destination=mask_destination(destination),
                purpose=purpose.value,
                reason=result.reason,
            )

        return ChallengeIssued(
            expires_at=challenge.expires_at,
            expires_in=policy.ttl_seconds,
            attempts_remaining=policy.attempt_limit,
        )

    async def verify(
        self,
        destination: str,
        purpose: Union[Purpose, str],
        session_id: str,
        code: str,
    ) -> VerificationResult:
        """Check *code* against the stored challenge.

        Each call past the existence and consumed checks counts as one
        attempt, whether or not the code matches.
        """
        purpose = _as_purpose(purpose)
        session_id = self._require_session_id(session_id)
        code = (code or "").strip()
        if len(code) != self._code_length or not code.isdigit():
            raise ValidationError(
                f"Code must be {self._code_length} digits", field="code"
            )

        key = self._key(destination, purpose, session_id)
        challenge = OTPChallenge.from_cache(await self._store.get_hash(key))
        if challenge is None or challenge.expires_at <= self._now():
            return self._finish(destination, purpose, VerificationStatus.EXPIRED)
        if challenge.consumed:
            return self._finish(
                destination,
                purpose,
                VerificationStatus.ALREADY_USED,
                attempts=challenge.attempts,
            )

        attempt = await self._store.incr_hash_field(key, "attempts")
        if attempt is None:
            return self._finish(destination, purpose, VerificationStatus.EXPIRED)
        limit = challenge.attempt_limit
        if attempt > limit:
            return self._finish(
                destination, purpose, VerificationStatus.ATTEMPTS_EXCEEDED, attempts=limit
            )

        if not digests_match(hash_token(code), challenge.code_hash):
            return self._finish(
                destination,
                purpose,
                VerificationStatus.INVALID_CODE,
                attempts=attempt,
                attempts_remaining=limit - attempt,
            )

        claimed = await self._store.set_hash_field_if_absent(
            key, "consumed_at", str(self._now().timestamp())
        )
        if claimed is None:
            return self._finish(destination, purpose, VerificationStatus.EXPIRED)
        if not claimed:
            return self._finish(
                destination, purpose, VerificationStatus.ALREADY_USED, attempts=attempt
            )
        return self._finish(
            destination, purpose, VerificationStatus.VERIFIED, attempts=attempt
        )

    def _finish(
        self,
        destination: str,
        purpose: Purpose,
        status: VerificationStatus,
        attempts: int = 0,
        attempts_remaining: int = 0,
    ) -> VerificationResult:
        event = "otp_verified" if status is VerificationStatus.VERIFIED else "otp_rejected"
        log.info(
            event,
            destination=mask_destination(destination),
            purpose=purpose.value,
            status=status.value,
            attempts=attempts,
        )
        return VerificationResult(
            status=status, attempts=attempts, attempts_remaining=attempts_remaining
        )

    async def require_verified(
        self,
        destination: str,
        purpose: Union[Purpose, str],
        session_id: str,
        code: str,
    ) -> VerificationResult:
        """verify(), raising the matching typed error unless the code is accepted."""
        result = await self.verify(destination, purpose, session_id, code)
        if result.status is VerificationStatus.VERIFIED:
            return result
        if result.status is VerificationStatus.INVALID_CODE:
            raise InvalidCredentialError(
                "Invalid verification code",
                field="code",
                details={
                    "attempts": result.attempts,
                    "attempts_remaining": result.attempts_remaining,
                },
            )
        if result.status is VerificationStatus.EXPIRED:
            raise ExpiredError("Verification code has expired. Request a new one.")
        if result.status is VerificationStatus.ALREADY_USED:
            raise ConflictError("Verification code has already been used")
        raise AttemptsExceededError(
            "Too many incorrect attempts. Request a new code."
        )

    async def status(
        self, destination: str, purpose: Union[Purpose, str], session_id: str
    ) -> ChallengeStatus:
        """Report whether the current challenge has been verified, for polling."""
        purpose = _as_purpose(purpose)
        session_id = self._require_session_id(session_id)
        challenge = OTPChallenge.from_cache(
            await self._store.get_hash(self._key(destination, purpose, session_id))
        )
        if challenge is None or challenge.expires_at <= self._now():
            return ChallengeStatus(verified=False)
        return ChallengeStatus(
            verified=challenge.consumed,
            expires_at=challenge.expires_at,
            attempts_remaining=max(0, challenge.attempt_limit - challenge.attempts),
        )
