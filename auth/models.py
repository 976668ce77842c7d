"""
auth/models.py -- Domain dataclasses for user records and request identities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A persisted user record.

    id is the store-assigned 24-hex-character identifier and is None before
    the record is written. hashed_password is None when a full replace omitted
    the password; such a record cannot authenticate until a new one is set.

    token_version is the per-record revocation counter. Every issued token
    carries a snapshot of it; logout bumps it by one.
    """

    name: str | None = None
    age: int | None = None
    email: str | None = None
    id: str | None = None
    hashed_password: str | None = None
    token_version: int = 0
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, created per request by the gate.

    Basic auth fills email; bearer auth fills token_version with the snapshot
    embedded in the token.
    """

    id: str
    email: str | None = None
    token_version: int | None = None
