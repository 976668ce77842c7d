"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Passwords are hashed here, on every save path (create, replace, update), so
  no caller can persist a plaintext password by accident.

Concurrency:
  Email uniqueness is a UNIQUE index, not a lookup-then-insert. Concurrent
  inserts with the same email race inside the database and the loser gets
  sqlalchemy.exc.IntegrityError, which callers map to a conflict.
  replace_user() and increment_token_version() are single UPDATE statements,
  so neither reads a row before writing it.

Identifiers:
  Record ids are 24 lowercase hex characters: a 4-byte big-endian seconds
  timestamp followed by 8 random bytes, so ids sort roughly by creation time.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.pool import SingletonThreadPool

from auth.models import User
from auth.passwords import hash_password

logger = logging.getLogger("userapi.store")

_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(24), primary_key=True),
    Column("name", String(255)),
    Column("age", Integer),
    # NULL emails never collide in a UNIQUE index.
    Column("email", String(255), unique=True),
    Column("hashed_password", Text),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns a caller may set through update_user(). Everything else is
# store-managed.
_UPDATABLE = frozenset({"name", "age", "email", "password"})


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore the request.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_object_id() -> str:
    """Return a fresh 24-hex-character record id."""
    return f"{int(time.time()) & 0xFFFFFFFF:08x}{secrets.token_hex(8)}"


def is_valid_id(value: str) -> bool:
    """Return True if value has the shape of a record id (24 hex chars)."""
    return bool(_ID_RE.match(value))


def _is_sqlite_memory(url: URL) -> bool:
    """True for sqlite://, sqlite:///:memory: and file: URIs with mode=memory."""
    return url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///users.db")
        uid = store.create_user(User(name="Ada", age=36, email="ada@example.com"), password="s3cret")
        user = store.get_by_email("ada@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        url = make_url(db_url)
        engine_args: dict = {}
        if url.get_backend_name() == "sqlite":
            engine_args["connect_args"] = {"check_same_thread": False}
            if _is_sqlite_memory(url):
                # One connection per thread; a shared-cache database lives as
                # long as any of them is open.
                engine_args["poolclass"] = SingletonThreadPool
        self.engine: Engine = create_engine(url, **engine_args)
        if url.get_backend_name() == "sqlite":
            event.listen(self.engine, "connect", _set_wal_mode)
        # First real connection -- an unreachable store fails here, at startup.
        _metadata.create_all(self.engine)
        logger.info("User store ready (%s)", self.engine.url.render_as_string(hide_password=True))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return every user in creation order."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at, _users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def get_token_version(self, user_id: str) -> int | None:
        """Return the current revocation counter, or None if the user is gone."""
        with self.engine.connect() as conn:
            return conn.execute(select(_users.c.token_version).where(_users.c.id == user_id.lower())).scalar()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str | None = None) -> str:
        """Insert a new user and return its assigned id.

        token_version always starts at 0 regardless of the dataclass value.
        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = _now_iso()
        user_id = new_object_id()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    name=user.name,
                    age=user.age,
                    email=user.email,
                    hashed_password=hash_password(password) if password else None,
                    token_version=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user_id

    def replace_user(
        self,
        user_id: str,
        *,
        name: str | None,
        age: int | None,
        email: str | None,
        password: str | None = None,
    ) -> bool:
        """Overwrite every caller-owned field of a record in one statement.

        A field passed as None is cleared -- including the password hash.
        token_version and created_at are store-managed and kept.

        Returns True if a row was replaced, False if user_id was not found.
        Raises sqlalchemy.exc.IntegrityError if email collides with another record.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id.lower())
                .values(
                    name=name,
                    age=age,
                    email=email,
                    hashed_password=hash_password(password) if password else None,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def update_user(self, user_id: str, **fields) -> bool:
        """Set only the supplied fields on an existing record.

        Accepted fields: name, age, email, password. password is hashed
        before it is written. Unknown keys raise ValueError rather than being
        silently ignored.

        An empty update still succeeds when the record exists, matching a
        no-op $set. Returns True if the record exists, False otherwise.
        Raises sqlalchemy.exc.IntegrityError if email collides with another record.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        values = {k: v for k, v in fields.items() if k != "password"}
        if "password" in fields:
            password = fields["password"]
            values["hashed_password"] = hash_password(password) if password else None
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id.lower()).values(**values))
            conn.commit()
        return result.rowcount > 0

    def increment_token_version(self, user_id: str) -> int | None:
        """Bump token_version by exactly one and return the new value.

        The arithmetic happens inside the UPDATE, so concurrent logouts each
        count. Returns None if the user does not exist.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id.lower())
                .values(token_version=_users.c.token_version + 1, updated_at=_now_iso())
            )
            if result.rowcount == 0:
                conn.rollback()
                return None
            version = conn.execute(select(_users.c.token_version).where(_users.c.id == user_id.lower())).scalar()
            conn.commit()
        return version

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id.lower()))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        age=row.age,
        email=row.email,
        hashed_password=row.hashed_password,
        token_version=row.token_version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
