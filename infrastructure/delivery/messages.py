"""Message bodies for one-time codes, per purpose.

Kept under 160 GSM characters so each code fits in a single SMS segment.
"""

from typing import Optional

_TEMPLATES = {
    "phone_verification": "Your {brand} phone verification code is {code}. Valid for {minutes} minutes. Do not share this code.",
    "password_reset": "Your {brand} password reset code is {code}. Valid for {minutes} minutes. If you did not request this, ignore this message.",
    "login": "Your {brand} login code is {code}. Valid for {minutes} minutes. Do not share this code.",
    "guest_checkout": "Your {brand} checkout verification code is {code}. Valid for {minutes} minutes.",
}

_DEFAULT = "Your {brand} verification code is {code}. Valid for {minutes} minutes. Do not share this code."


def render_code_message(
    purpose: str, code: str, brand: str, ttl_seconds: Optional[int] = 300
) -> str:
    minutes = max(1, (ttl_seconds or 300) // 60)
    template = _TEMPLATES.get(purpose, _DEFAULT)
    return template.format(brand=brand, code=code, minutes=minutes)
