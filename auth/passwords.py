"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

bcrypt only reads the first 72 bytes of its input, and bcrypt 5 refuses longer
input outright. MAX_PASSWORD_BYTES is that limit; request models and the CLI
check it before anything reaches hash_password().

Kept separate from auth/tokens.py so the store can hash on its save paths
without importing the settings-bound token codec.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    """Return True if the UTF-8 encoding of plain exceeds what bcrypt accepts."""
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValueError for passwords over MAX_PASSWORD_BYTES once encoded as
    UTF-8. Nothing is truncated.
    """
    if password_too_long(plain):
        raise ValueError(f"password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store, or a password bcrypt refuses to read
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Callers verify against it when the email does
# not exist so response time does not reveal which emails are registered.
DUMMY_HASH: str = hash_password("userapi_timing_dummy")
