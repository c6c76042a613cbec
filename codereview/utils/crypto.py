"""
Crypto utilities — bcrypt password hashing.

The hash is treated as an opaque one-way value: callers only ever hash a
new password or ask whether a plain-text password matches a stored hash.
"""

import bcrypt


def hash_password(plain_password: str, rounds: int = 12) -> str:
    """Hash a plain-text password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Not a bcrypt hash (corrupt or foreign row).
        return False
