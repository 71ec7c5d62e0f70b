"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
_row_to_identity is the mapper. Route and authenticator code never touches
SQL directly.

Two faces:
  Sync methods (create_identity, get_by_identifier, ...) for the CLI, the
  request-auth dependency and tests.
  Async methods (find_by_identifier, mark_authenticated) implement the
  IdentityRepository protocol the authenticator depends on. They push the
  blocking call onto a worker thread with asyncio.to_thread.

Failure contract:
  Any SQLAlchemy failure inside find_by_identifier() (driver error, pool
  timeout) is re-raised as IdentityLookupError. It is never folded into
  "not found".

Case-insensitivity:
  Logins match username OR email ignoring case. Emails are stored lowercased.
  Unique expression indexes on lower(username) and lower(email) keep two
  records from differing only in case. Usernames and emails form one
  namespace: create_identity() also refuses a username that is another
  record's email and vice versa, so an identifier never matches two rows.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from auth.errors import DuplicateIdentityError, IdentityLookupError
from auth.models import Identity

logger = logging.getLogger("pricetracker.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("secret_hash", Text, nullable=False),  # base64 salt||PBKDF2 key
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_authenticated_at", String(32)),
)

Index("ux_identities_username_ci", func.lower(_identities.c.username), unique=True)
Index("ux_identities_email_ci", func.lower(_identities.c.email), unique=True)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _is_memory_url(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity records.

    Usage:
        store = IdentityStore()
        store.create_identity(Identity(username="admin", email="admin@example.com",
                                       secret_hash=PasswordHasher().hash("secret")))
        identity = store.get_by_identifier("ADMIN@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        kwargs: dict = {}
        if db_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_url(db_url):
            # One shared connection, otherwise each worker thread from
            # asyncio.to_thread would see its own empty database.
            kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **kwargs)
        if db_url.startswith("sqlite") and not _is_memory_url(db_url):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Sync queries
    # ------------------------------------------------------------------

    def has_identities(self) -> bool:
        """Return True if at least one identity exists."""
        with self.engine.connect() as conn:
            result = conn.execute(_identities.select().limit(1)).fetchone()
        return result is not None

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned database ID.

        Raises DuplicateIdentityError if the username or email is already
        used by another identity as either a username or an email (ignoring
        case).
        """
        username = identity.username.strip()
        email = identity.email.strip().lower()
        keys = {username.lower(), email}
        with self.engine.begin() as conn:
            clash = conn.execute(
                _identities.select()
                .where(or_(func.lower(_identities.c.username).in_(keys), func.lower(_identities.c.email).in_(keys)))
                .limit(1)
            ).fetchone()
            if clash is not None:
                raise DuplicateIdentityError(f"'{username}' or '{email}' is already registered")
            try:
                result = conn.execute(
                    _identities.insert().values(
                        username=username,
                        email=email,
                        secret_hash=identity.secret_hash,
                        is_active=1 if identity.is_active else 0,
                        created_at=identity.created_at or _now_iso(),
                    )
                )
            except IntegrityError as exc:
                # Lost a race with a concurrent insert of the same name.
                raise DuplicateIdentityError(f"'{username}' or '{email}' is already registered") from exc
            return result.inserted_primary_key[0]

    def get_by_identifier(self, identifier: str) -> Identity | None:
        """Look up an identity by username or email, ignoring case."""
        key = identifier.strip().lower()
        with self.engine.connect() as conn:
            row = conn.execute(
                _identities.select()
                .where(or_(func.lower(_identities.c.username) == key, func.lower(_identities.c.email) == key))
                .order_by(_identities.c.id)
                .limit(1)
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_id(self, identity_id: int) -> Identity | None:
        """Look up an identity by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def set_active(self, identity_id: int, active: bool) -> bool:
        """Enable or disable an identity. Returns False if identity_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update().where(_identities.c.id == identity_id).values(is_active=1 if active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_authenticated(self, identity_id: int) -> None:
        """Stamp the current UTC time as last_authenticated_at."""
        with self.engine.connect() as conn:
            conn.execute(
                _identities.update().where(_identities.c.id == identity_id).values(last_authenticated_at=_now_iso())
            )
            conn.commit()

    # ------------------------------------------------------------------
    # IdentityRepository (async seam used by CredentialAuthenticator)
    # ------------------------------------------------------------------

    async def find_by_identifier(self, identifier: str) -> Identity | None:
        try:
            return await asyncio.to_thread(self.get_by_identifier, identifier)
        except SQLAlchemyError as exc:
            raise IdentityLookupError("identity store unavailable") from exc

    async def mark_authenticated(self, identity_id: int) -> None:
        await asyncio.to_thread(self.update_last_authenticated, identity_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        username=row.username,
        email=row.email,
        secret_hash=row.secret_hash,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        last_authenticated_at=row.last_authenticated_at,
    )
