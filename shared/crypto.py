"""
Cryptographic helpers — password hashing and token hashing.

Uses argon2 for passwords (via argon2-cffi) and SHA-256 for one-time codes
and opaque tokens. Only digests are ever persisted.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()
_placeholder_hash: Optional[str] = None


def configure_password_hasher(time_cost: int, memory_cost: int) -> None:
    """Replace the module hasher with one using the given argon2 cost factors.

    Called once at startup from the application factory.
    """
    global _password_hasher, _placeholder_hash
    _password_hasher = PasswordHasher(time_cost=time_cost, memory_cost=memory_cost)
    _placeholder_hash = None


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    Returns:
        ``True`` if the password matches, ``False`` for a wrong password or
        an unparseable hash.
    """
    if not password_hash:
        return False
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def reject_password(plain_password: str) -> bool:
    """Run a full verification against a placeholder hash and return False.

    Used when there is no stored hash to check, so a missing account costs
    as much as a wrong password.
    """
    global _placeholder_hash
    if _placeholder_hash is None:
        _placeholder_hash = _password_hasher.hash(secrets.token_urlsafe(16))
    verify_password(plain_password, _placeholder_hash)
    return False


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash OTP codes and reset tokens before storing them so the
    plaintext is never persisted.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def digests_match(candidate: str, stored_hash: str) -> bool:
    """Constant-time comparison of two hex digests."""
    return hmac.compare_digest(candidate.encode("utf-8"), stored_hash.encode("utf-8"))
