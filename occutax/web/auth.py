"""Single-credential authentication for the management API.

The username comes from ``ADMIN_USERNAME``; the password from ``ADMIN_PASSWORD``
is hashed once with bcrypt and compared in constant time.
"""

from __future__ import annotations

import bcrypt
import structlog

from occutax.config import get_config

logger = structlog.get_logger(__name__)

# Cache for bcrypt password hash (expensive to compute)
_password_hash_cache: bytes | None = None


def _get_password_hash() -> bytes:
    global _password_hash_cache

    if _password_hash_cache is not None:
        return _password_hash_cache

    password = get_config().auth.password
    if not password:
        # For development only; production config refuses to load without it
        password = "changeme"
        logger.warning("default_admin_password", hint="Set ADMIN_PASSWORD")

    _password_hash_cache = bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12))
    return _password_hash_cache


def reset_password_cache() -> None:
    global _password_hash_cache
    _password_hash_cache = None


def verify_credentials(username: str, password: str) -> bool:
    """Check a username/password pair against the configured credential."""
    expected_username = get_config().auth.username
    if username != expected_username:
        return False
    return bcrypt.checkpw(password.encode(), _get_password_hash())
