"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).
AppSettings is built once at process start and handed to the service
constructors; nothing in the services reads the environment directly.

Rotating JWT_SECRET (or the RS256 key pair) invalidates every outstanding
access and refresh token.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "identity-core"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional; without Redis, counters and challenges live in process memory
    redis_uri: Optional[str] = None


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "identity-core"
    jwt_audience: str = "identity-core.api"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 604800
    remember_me_refresh_ttl_seconds: int = 2592000

    # RS256 keys (preferred)
    jwt_private_key: str = ""
    jwt_public_key: str = ""

    # HS256 fallback (used when RS256 keys are absent)
    jwt_secret: str = ""

    @property
    def use_rs256(self) -> bool:
        return bool(self.jwt_private_key and self.jwt_public_key)


class OTPSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    otp_length: int = 6
    otp_ttl_seconds: int = 300

    # Verification attempts allowed per challenge
    otp_attempt_limit: int = 5
    otp_login_attempt_limit: int = 3

    # Send ceilings per destination and purpose
    otp_sends_per_minute: int = 1
    otp_sends_per_day: int = 5

    # Password login attempts per identifier
    login_attempts_per_window: int = 10
    login_attempt_window_seconds: int = 60

    reset_token_ttl_seconds: int = 900


class PasswordSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    password_hash_time_cost: int = 3
    password_hash_memory_cost: int = 65536
    password_min_length: int = 8


class SmsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # "console" logs codes instead of sending them (development only)
    sms_provider: str = "console"
    sslwireless_api_token: str = ""
    sslwireless_sid: str = ""
    sslwireless_api_url: str = "https://smsplus.sslwireless.com/api/v3/send-sms"
    sms_brand_name: str = "Scarlet"


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@example.com"
    zepto_from_name: str = "identity-core"


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = "development"
    app_name: str = "identity-core"

    cors_origins: list[str] = ["http://localhost:3000"]

    # Seconds between expired-session sweeps (workers/session_sweeper.py)
    session_sweep_interval_seconds: int = 3600

    # GeoIP database used for session locations
    geoip_city_db: str = "misc/GeoLite2-City.mmdb"

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    jwt: Optional[JWTSettings] = None
    otp: Optional[OTPSettings] = None
    hashing: Optional[PasswordSettings] = None
    sms: Optional[SmsSettings] = None
    email: Optional[EmailSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.otp is None:
            self.otp = OTPSettings()
        if self.hashing is None:
            self.hashing = PasswordSettings()
        if self.sms is None:
            self.sms = SmsSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
