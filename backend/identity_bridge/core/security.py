# identity_bridge/core/security.py
from __future__ import annotations

import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

# Local scheme for migrated credentials.
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# Scheme of the legacy user store (Rails has_secure_password, bcrypt-ruby).
legacy_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# -------------------------
# Local password hashing
# -------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def needs_rehash(password_hash: str) -> bool:
    return pwd_context.needs_update(password_hash)


# -------------------------
# Legacy credential validation
# -------------------------
def verify_legacy_password(plaintext: str | None, stored_hash: str | None) -> bool:
    """
    Check a plaintext password against a hash from the legacy user store.

    The cost factor and salt are read from the hash itself, so hashes produced
    with any historical cost and with the $2a$/$2b$/$2y$ prefixes all verify.
    Never raises: empty input or an unrecognised/malformed hash is simply False.
    """
    if not plaintext or not stored_hash:
        return False

    try:
        return legacy_pwd_context.verify(plaintext, stored_hash.strip())
    except (ValueError, TypeError) as exc:
        logger.debug("Legacy password hash could not be verified: %s", type(exc).__name__)
        return False
