"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests, and clears any identity-core variables inherited from the
shell. Tests control config exclusively through monkeypatch.setenv().
"""

import pytest

_APP_ENV_VARS = (
    "ENV",
    "MONGODB_URI",
    "DB_NAME",
    "REDIS_URI",
    "JWT_SECRET",
    "JWT_PRIVATE_KEY",
    "JWT_PUBLIC_KEY",
    "OTP_ATTEMPT_LIMIT",
    "OTP_LOGIN_ATTEMPT_LIMIT",
    "SMS_PROVIDER",
)


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})
    for var in _APP_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
