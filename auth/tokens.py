"""
auth/tokens.py -- JWT encode/decode and credential checks.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       user id (sub), the record's token_version at issue time, and an expiry.
       Verification returns None on any failure -- the gate turns that into a
       401.

  Revocation: token_version is a snapshot. Logout increments the stored
       counter, so any token minted before it carries a smaller number. The
       bearer gate decides whether to compare the two (ENFORCE_TOKEN_VERSION).

  Credential check: authenticate_user() always runs bcrypt, against a dummy
       hash when the email is unknown, so response time does not reveal
       whether an email exists.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.passwords import DUMMY_HASH, verify_password
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("userapi.auth")

_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: str, token_version: int, expires_in: timedelta | None = None) -> str:
    """Encode a signed JWT for user_id with a token_version snapshot.

    Args:
        user_id:       Store identifier, stored as the JWT subject claim.
        token_version: The record's current revocation counter.
        expires_in:    Validity window. Defaults to TOKEN_EXPIRE_SECONDS.
    """
    if expires_in is None:
        expires_in = timedelta(seconds=get_settings().token_expire_seconds)
    payload = {
        "sub": user_id,
        "token_version": token_version,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, get_settings().secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Bad signature, expired exp, and payloads missing sub or an integer
    token_version all map to None.
    """
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("sub"), str):
        return None
    version = payload.get("token_version")
    if not isinstance(version, int) or isinstance(version, bool):
        return None
    return payload


# ---------------------------------------------------------------------------
# Credential check (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair against the store with timing equalization.

    - Unknown email: bcrypt runs against DUMMY_HASH (same cost as a real check)
    - Record without a password: same dummy check
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any mismatch.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
