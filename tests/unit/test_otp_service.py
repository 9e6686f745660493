"""Unit tests for OTPService: issue, verify, attempt limits and polling."""

import asyncio

import pytest

from errors import (
    AttemptsExceededError,
    ConflictError,
    ExpiredError,
    InvalidCredentialError,
    RateLimitError,
    ValidationError,
)
from infrastructure.delivery.protocol import DeliveryResult
from services.otp_service import OTPService, VerificationStatus
from services.policy import Purpose
from shared.crypto import hash_token

PHONE = "+8801712345678"
SESSION = "sess-1"


async def _issue(graph, purpose=Purpose.PHONE_VERIFICATION, destination=PHONE, session=SESSION):
    issued = await graph.otp.issue(destination, purpose, session)
    return issued, graph.last_code()


# ── issue ─────────────────────────────────────────────────────────────────────


class TestIssue:
    async def test_sends_code_and_stores_only_its_digest(self, graph):
        issued, code = await _issue(graph)
        assert len(code) == 6 and code.isdigit()
        assert issued.expires_in == 300
        assert issued.attempts_remaining == 5

        record = await graph.store.get_hash(f"otp:phone_verification:{PHONE}:{SESSION}")
        assert record["code_hash"] == hash_token(code)
        assert code not in record.values()

    async def test_record_ttl_matches_challenge_lifetime(self, graph):
        await _issue(graph)
        ttl = await graph.store.ttl(f"otp:phone_verification:{PHONE}:{SESSION}")
        assert ttl == 300

    async def test_login_challenge_allows_three_attempts(self, graph):
        issued, _ = await _issue(graph, purpose=Purpose.LOGIN)
        assert issued.attempts_remaining == 3

    async def test_accepts_purpose_by_value(self, graph):
        issued, _ = await _issue(graph, purpose="guest_checkout")
        assert issued.expires_in == 300

    async def test_unknown_purpose_rejected(self, graph):
        with pytest.raises(ValidationError):
            await graph.otp.issue(PHONE, "newsletter", SESSION)

    @pytest.mark.parametrize("session_id", ["", "   ", None])
    async def test_session_id_required(self, graph, session_id):
        with pytest.raises(ValidationError):
            await graph.otp.issue(PHONE, Purpose.LOGIN, session_id)

    async def test_second_send_within_a_minute_is_rate_limited(self, graph):
        await _issue(graph)
        with pytest.raises(RateLimitError) as exc_info:
            await _issue(graph)
        assert 0 < exc_info.value.retry_after <= 60
        assert len(graph.delivery.sent) == 1

    async def test_reissue_supersedes_previous_code(self, graph):
        _, first = await _issue(graph)
        graph.clock.advance(61)
        _, second = await _issue(graph)

        if first != second:
            stale = await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, first)
            assert stale.status is VerificationStatus.INVALID_CODE
        fresh = await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, second)
        assert fresh.verified

    async def test_reissue_resets_attempt_counter(self, graph):
        _, code = await _issue(graph)
        await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, graph.wrong_code(code))
        graph.clock.advance(61)
        issued, _ = await _issue(graph)
        assert issued.attempts_remaining == 5
        status = await graph.otp.status(PHONE, Purpose.PHONE_VERIFICATION, SESSION)
        assert status.attempts_remaining == 5

    async def test_delivery_failure_keeps_challenge_valid(self, graph, mocker):
        failing = mocker.AsyncMock()
        failing.send.return_value = DeliveryResult(accepted=False, reason="gateway_down")
        otp = OTPService(
            graph.store,
            graph.guard,
            failing,
            {p: graph.otp._policies[p] for p in Purpose},
            now=graph.clock.now,
        )
        await otp.issue(PHONE, Purpose.GUEST_CHECKOUT, SESSION)
        code = failing.send.call_args.args[2]
        result = await otp.verify(PHONE, Purpose.GUEST_CHECKOUT, SESSION, code)
        assert result.verified


# ── verify ────────────────────────────────────────────────────────────────────


class TestVerify:
    async def test_correct_code_verifies_once(self, graph):
        _, code = await _issue(graph)
        first = await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, code)
        assert first.status is VerificationStatus.VERIFIED
        assert first.attempts == 1

        second = await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, code)
        assert second.status is VerificationStatus.ALREADY_USED

    async def test_no_challenge_is_expired(self, graph):
        result = await graph.otp.verify(PHONE, Purpose.LOGIN, SESSION, "123456")
        assert result.status is VerificationStatus.EXPIRED

    async def test_challenge_expires_after_ttl(self, graph):
        _, code = await _issue(graph)
        graph.clock.advance(301)
        result = await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, code)
        assert result.status is VerificationStatus.EXPIRED

    async def test_challenge_scoped_to_session(self, graph):
        _, code = await _issue(graph)
        result = await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, "sess-2", code)
        assert result.status is VerificationStatus.EXPIRED

    async def test_challenge_scoped_to_purpose(self, graph):
        _, code = await _issue(graph)
        result = await graph.otp.verify(PHONE, Purpose.GUEST_CHECKOUT, SESSION, code)
        assert result.status is VerificationStatus.EXPIRED

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", ""])
    async def test_malformed_code_rejected_without_counting(self, graph, code):
        await _issue(graph)
        with pytest.raises(ValidationError):
            await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, code)
        status = await graph.otp.status(PHONE, Purpose.PHONE_VERIFICATION, SESSION)
        assert status.attempts_remaining == 5

    async def test_wrong_code_reports_remaining_attempts(self, graph):
        _, code = await _issue(graph)
        result = await graph.otp.verify(
            PHONE, Purpose.PHONE_VERIFICATION, SESSION, graph.wrong_code(code)
        )
        assert result.status is VerificationStatus.INVALID_CODE
        assert (result.attempts, result.attempts_remaining) == (1, 4)

    async def test_login_lockout_scenario(self, graph):
        _, code = await _issue(graph, purpose=Purpose.LOGIN)
        wrong = graph.wrong_code(code)

        for attempt in (1, 2, 3):
            result = await graph.otp.verify(PHONE, Purpose.LOGIN, SESSION, wrong)
            assert result.status is VerificationStatus.INVALID_CODE
            assert result.attempts == attempt
            assert result.attempts_remaining == 3 - attempt

        locked = await graph.otp.verify(PHONE, Purpose.LOGIN, SESSION, code)
        assert locked.status is VerificationStatus.ATTEMPTS_EXCEEDED
        assert locked.attempts == 3
        assert not locked.verified

    async def test_attempts_never_exceed_limit_in_results(self, graph):
        _, code = await _issue(graph, purpose=Purpose.LOGIN)
        wrong = graph.wrong_code(code)
        results = [
            await graph.otp.verify(PHONE, Purpose.LOGIN, SESSION, wrong) for _ in range(6)
        ]
        assert all(r.attempts <= 3 for r in results)
        assert results[-1].status is VerificationStatus.ATTEMPTS_EXCEEDED

    async def test_concurrent_correct_codes_verify_exactly_once(self, graph):
        _, code = await _issue(graph)
        results = await asyncio.gather(
            *(
                graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, code)
                for _ in range(5)
            )
        )
        statuses = [r.status for r in results]
        assert statuses.count(VerificationStatus.VERIFIED) == 1
        assert all(
            s in (VerificationStatus.VERIFIED, VerificationStatus.ALREADY_USED)
            for s in statuses
        )


# ── require_verified ──────────────────────────────────────────────────────────


class TestRequireVerified:
    async def test_returns_result_on_success(self, graph):
        _, code = await _issue(graph)
        result = await graph.otp.require_verified(
            PHONE, Purpose.PHONE_VERIFICATION, SESSION, code
        )
        assert result.verified

    async def test_wrong_code_raises_invalid_credentials_with_details(self, graph):
        _, code = await _issue(graph)
        with pytest.raises(InvalidCredentialError) as exc_info:
            await graph.otp.require_verified(
                PHONE, Purpose.PHONE_VERIFICATION, SESSION, graph.wrong_code(code)
            )
        assert exc_info.value.details == {"attempts": 1, "attempts_remaining": 4}

    async def test_missing_challenge_raises_expired(self, graph):
        with pytest.raises(ExpiredError):
            await graph.otp.require_verified(PHONE, Purpose.LOGIN, SESSION, "000000")

    async def test_reuse_raises_conflict(self, graph):
        _, code = await _issue(graph)
        await graph.otp.require_verified(PHONE, Purpose.PHONE_VERIFICATION, SESSION, code)
        with pytest.raises(ConflictError):
            await graph.otp.require_verified(
                PHONE, Purpose.PHONE_VERIFICATION, SESSION, code
            )

    async def test_lockout_raises_attempts_exceeded(self, graph):
        _, code = await _issue(graph, purpose=Purpose.LOGIN)
        for _ in range(3):
            await graph.otp.verify(PHONE, Purpose.LOGIN, SESSION, graph.wrong_code(code))
        with pytest.raises(AttemptsExceededError):
            await graph.otp.require_verified(PHONE, Purpose.LOGIN, SESSION, code)


# ── status ────────────────────────────────────────────────────────────────────


class TestStatus:
    async def test_pending_challenge(self, graph):
        issued, _ = await _issue(graph)
        status = await graph.otp.status(PHONE, Purpose.PHONE_VERIFICATION, SESSION)
        assert status.verified is False
        assert status.expires_at == issued.expires_at
        assert status.attempts_remaining == 5

    async def test_verified_challenge(self, graph):
        _, code = await _issue(graph)
        await graph.otp.verify(PHONE, Purpose.PHONE_VERIFICATION, SESSION, code)
        status = await graph.otp.status(PHONE, Purpose.PHONE_VERIFICATION, SESSION)
        assert status.verified is True

    async def test_expired_challenge(self, graph):
        await _issue(graph)
        graph.clock.advance(300)
        status = await graph.otp.status(PHONE, Purpose.PHONE_VERIFICATION, SESSION)
        assert status.verified is False
        assert status.expires_at is None
