"""
OTP purposes and the single policy table consulted by AbuseGuard and
OTPService.

Every purpose maps to a challenge lifetime, a per-challenge attempt limit and
the rate rules applied to code sends for one destination. Password logins
are guarded by their own rule set under PASSWORD_LOGIN_SCOPE.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from config import OTPSettings


class Purpose(str, Enum):
    PHONE_VERIFICATION = "phone_verification"
    PASSWORD_RESET = "password_reset"
    LOGIN = "login"
    GUEST_CHECKOUT = "guest_checkout"


PASSWORD_LOGIN_SCOPE = "password_login"


@dataclass(frozen=True)
class RateRule:
    name: str
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class PurposePolicy:
    ttl_seconds: int
    attempt_limit: int
    send_rules: tuple[RateRule, ...]


def build_purpose_policies(settings: OTPSettings) -> dict[Purpose, PurposePolicy]:
    send_rules = (
        RateRule("minute", settings.otp_sends_per_minute, 60),
        RateRule("day", settings.otp_sends_per_day, 86400),
    )
    policies = {
        purpose: PurposePolicy(
            ttl_seconds=settings.otp_ttl_seconds,
            attempt_limit=settings.otp_attempt_limit,
            send_rules=send_rules,
        )
        for purpose in Purpose
    }
    policies[Purpose.LOGIN] = PurposePolicy(
        ttl_seconds=settings.otp_ttl_seconds,
        attempt_limit=settings.otp_login_attempt_limit,
        send_rules=send_rules,
    )
    return policies


def build_rate_rules(
    settings: OTPSettings,
    policies: Mapping[Purpose, PurposePolicy],
) -> dict[str, tuple[RateRule, ...]]:
    """Rule table for AbuseGuard, keyed by purpose value or scope name."""
    rules: dict[str, tuple[RateRule, ...]] = {
        purpose.value: policy.send_rules for purpose, policy in policies.items()
    }
    rules[PASSWORD_LOGIN_SCOPE] = (
        RateRule(
            "window",
            settings.login_attempts_per_window,
            settings.login_attempt_window_seconds,
        ),
    )
    return rules
