"""
auth/dependencies.py -- The authentication gate and its FastAPI Depends() helpers.

One capability, two variants:
  BasicAuthenticator  -- Authorization: Basic base64(email:password), checked
                         against the store with bcrypt.
  BearerAuthenticator -- Authorization: Bearer <jwt>, verified with the token
                         codec and, optionally, against the stored
                         token_version.

Both expose authenticate(header) -> Identity and raise HTTP 401 on reject, so
route handlers consume whichever one AUTH_MODE selected without knowing which.
build_authenticator() is the factory; the lifespan stores the result on
app.state.gate (None when AUTH_MODE=none).

get_current_identity() guards /users, require_token_identity() guards
/auth/logout (always bearer), require_docs_access() guards the docs when
PROTECT_DOCS is on.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import base64
import binascii
import logging
from abc import ABC, abstractmethod

from fastapi import HTTPException, Request

from auth.models import Identity
from auth.store import UserStore
from auth.tokens import authenticate_user, decode_access_token

logger = logging.getLogger("userapi.auth")

BASIC_REALM = 'Basic realm="User API", charset="UTF-8"'


class Authenticator(ABC):
    """Turns an Authorization header into an Identity or raises HTTP 401."""

    challenge: str = ""

    @abstractmethod
    def authenticate(self, authorization: str | None) -> Identity: ...

    def reject(self, message: str) -> HTTPException:
        """Build the 401 this gate answers with, challenge header included."""
        return HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": message},
            headers={"WWW-Authenticate": self.challenge},
        )


def parse_basic_credentials(authorization: str | None) -> tuple[str, str] | None:
    """Split a Basic header into (email, password), or None if malformed.

    Malformed means: missing, wrong scheme, bad base64, not UTF-8, no ':'
    separator, or an empty email/password. The email is trimmed; the password
    is taken verbatim.
    """
    if not authorization or not authorization.startswith("Basic "):
        return None
    try:
        raw = base64.b64decode(authorization[6:].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    email, sep, password = raw.partition(":")
    email = email.strip()
    if not sep or not email or not password:
        return None
    return email, password


class BasicAuthenticator(Authenticator):
    """HTTP Basic credentials checked against the user store.

    The username part of the header is the account email. Header problems are
    rejected before the store is touched; store or hashing failures are logged
    and turned into a 401, never a 500.
    """

    challenge = BASIC_REALM

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def authenticate(self, authorization: str | None) -> Identity:
        credentials = parse_basic_credentials(authorization)
        if credentials is None:
            raise self.reject("Authentication required")
        email, password = credentials
        try:
            user = authenticate_user(self.store, email, password)
        except Exception:
            logger.exception("Basic auth lookup failed")
            raise self.reject("Invalid authorization header") from None
        if user is None:
            logger.debug("Basic auth rejected: bad credentials")
            raise self.reject("Invalid email or password")
        return Identity(id=user.id, email=user.email)


class BearerAuthenticator(Authenticator):
    """JWT bearer tokens minted by POST /auth/login.

    With enforce_token_version the gate re-reads the record on every request
    and rejects a token whose snapshot no longer matches (logged out, or the
    user was deleted). Without it, a logged-out token stays valid until exp.
    """

    challenge = "Bearer"

    def __init__(self, store: UserStore, enforce_token_version: bool = True) -> None:
        self.store = store
        self.enforce_token_version = enforce_token_version

    def authenticate(self, authorization: str | None) -> Identity:
        parts = (authorization or "").split()
        if len(parts) < 2 or parts[0].lower() != "bearer":
            raise self.reject("No token")
        payload = decode_access_token(parts[1])
        if payload is None:
            raise self.reject("Invalid or expired token")
        identity = Identity(id=payload["sub"], token_version=payload["token_version"])
        if self.enforce_token_version:
            current = self.store.get_token_version(identity.id)
            if current is None or current != identity.token_version:
                logger.debug("Bearer auth rejected: stale token_version for %s", identity.id)
                raise self.reject("Token has been revoked")
        return identity


def build_authenticator(mode: str, store: UserStore, enforce_token_version: bool = True) -> Authenticator | None:
    """Return the gate for AUTH_MODE, or None when the API is left open."""
    if mode == "basic":
        return BasicAuthenticator(store)
    if mode == "bearer":
        return BearerAuthenticator(store, enforce_token_version=enforce_token_version)
    if mode == "none":
        return None
    raise ValueError(f"Unknown auth mode: {mode!r}")


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def _run_gate(request: Request, gate: Authenticator | None) -> Identity | None:
    if gate is None:
        return None
    identity = gate.authenticate(request.headers.get("Authorization"))
    request.state.identity = identity
    return identity


def get_current_identity(request: Request) -> Identity | None:
    """Authenticate with the configured gate. Returns None when AUTH_MODE=none.

    Use as a FastAPI dependency:
        @router.get("/users")
        def route(identity: Identity | None = Depends(get_current_identity)): ...
    """
    return _run_gate(request, request.app.state.gate)


def require_token_identity(request: Request) -> Identity:
    """Require a valid bearer token regardless of AUTH_MODE. Raises HTTP 401."""
    return _run_gate(request, request.app.state.token_gate)


def require_docs_access(request: Request) -> Identity | None:
    """Gate the API docs behind the configured authenticator when PROTECT_DOCS is on."""
    return _run_gate(request, request.app.state.docs_gate)
