"""bcrypt password hashing."""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes and newer releases reject longer input.
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(password), hashed_password.encode("utf-8"))
    except ValueError:
        return False
