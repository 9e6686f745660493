"""
Logging utilities for identity-core.

Every module obtains its logger through get_logger(__name__) and logs
snake_case event names with keyword context:

    log = get_logger(__name__)
    log.info("session_created", user_id=user_id, device=device)
"""

from typing import Optional

import structlog
from structlog.stdlib import BoundLogger

from shared.logging_config import configure_structlog, setup_logging
from shared.logging_config import hash_ip as _hash_ip

__all__ = [
    "get_logger",
    "hash_ip",
    "mask_destination",
    "configure_structlog",
    "setup_logging",
]


def get_logger(name: str) -> BoundLogger:
    """Return a structlog logger bound to *name*."""
    return structlog.get_logger(name)


def hash_ip(ip_address: Optional[str]) -> Optional[str]:
    """Hash *ip_address* in production; ``None`` passes through."""
    if ip_address is None:
        return None
    return _hash_ip(ip_address)


def mask_destination(destination: Optional[str]) -> Optional[str]:
    """Mask a phone number or email address for log output.

    ``+8801712345678`` → ``+88017****678``, ``jane@example.com`` →
    ``j***@example.com``.
    """
    if not destination:
        return destination
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:1]}***@{domain}"
    if len(destination) <= 7:
        return "****"
    return f"{destination[:6]}****{destination[-3:]}"
