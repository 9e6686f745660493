"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.cache.store import KeyValueStore, create_store
from infrastructure.delivery.console import ConsoleDeliveryProvider
from infrastructure.delivery.protocol import DeliveryProvider
from infrastructure.delivery.router import RoutingDeliveryProvider
from infrastructure.delivery.sslwireless import SslWirelessSmsProvider
from infrastructure.delivery.zeptomail import ZeptoMailProvider
from infrastructure.geoip import GeoIPService
from infrastructure.http_client import HttpClient
from repositories import reset_token_repository, session_repository, user_repository
from repositories.indexes import ensure_indexes
from repositories.reset_token_repository import ResetTokenRepository
from repositories.session_repository import SessionRepository
from repositories.user_repository import UserRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from services.abuse_guard import AbuseGuard
from services.auth_service import AuthService
from services.login_issuer import LoginIssuer
from services.otp_service import OTPService
from services.password_reset_service import PasswordResetService
from services.policy import build_purpose_policies, build_rate_rules
from services.session_service import SessionService
from services.token_service import TokenService
from shared.crypto import configure_password_hasher
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_delivery(settings: AppSettings, http_client: HttpClient) -> DeliveryProvider:
    """SMS via SSL Wireless and email via ZeptoMail, or the console in development."""
    ttl = settings.otp.otp_ttl_seconds
    if settings.sms.sms_provider == "sslwireless":
        sms: DeliveryProvider = SslWirelessSmsProvider(
            settings.sms, http_client, code_ttl_seconds=ttl
        )
    else:
        sms = ConsoleDeliveryProvider()

    if settings.email.zepto_api_token:
        email: DeliveryProvider = ZeptoMailProvider(
            settings.email,
            http_client,
            brand=settings.sms.sms_brand_name,
            code_ttl_seconds=ttl,
        )
    else:
        email = ConsoleDeliveryProvider()
    return RoutingDeliveryProvider(sms=sms, email=email)


def build_auth_service(
    settings: AppSettings,
    db: AsyncDatabase,
    store: KeyValueStore,
    delivery: DeliveryProvider,
    geoip: Optional[GeoIPService] = None,
) -> AuthService:
    """Wire every service of the identity core onto one AuthService."""
    users = UserRepository(db[user_repository.COLLECTION])
    policies = build_purpose_policies(settings.otp)
    guard = AbuseGuard(store, build_rate_rules(settings.otp, policies))
    otp = OTPService(
        store, guard, delivery, policies, code_length=settings.otp.otp_length
    )
    tokens = TokenService(settings.jwt)
    sessions = SessionService(
        SessionRepository(db[session_repository.COLLECTION]), geoip=geoip
    )
    login = LoginIssuer(tokens, sessions, users)
    password_reset = PasswordResetService(
        users,
        ResetTokenRepository(db[reset_token_repository.COLLECTION]),
        otp,
        login,
        reset_token_ttl_seconds=settings.otp.reset_token_ttl_seconds,
        password_min_length=settings.hashing.password_min_length,
    )
    return AuthService(
        users,
        tokens,
        sessions,
        otp,
        guard,
        login,
        password_reset,
        password_min_length=settings.hashing.password_min_length,
    )


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging.log_level, settings.logging.log_format)
    configure_password_hasher(
        settings.hashing.password_hash_time_cost,
        settings.hashing.password_hash_memory_cost,
    )

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        app.state.mongo_client = mongo_client
        app.state.db = mongo_client[settings.db.db_name]
        app.state.settings = settings

        # Redis is optional; without it the store lives in process memory
        redis_client = await create_redis_client(settings.redis.redis_uri)
        app.state.redis = redis_client

        await ensure_indexes(app.state.db)

        http_client = HttpClient()
        geoip = GeoIPService(settings.geoip_city_db)
        app.state.auth_service = build_auth_service(
            settings,
            app.state.db,
            create_store(redis_client),
            build_delivery(settings, http_client),
            geoip,
        )
        log.info("app_started", env=settings.env)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        geoip.close()
        await http_client.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)

    return app
