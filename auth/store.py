"""
auth/store.py -- SQLAlchemy Core persistence layer for credentials.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_credential is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) is the authority for uniqueness. create_credential() looks the
  email up first only to fail fast on the common case; two concurrent signups
  can both pass that check, and the loser's INSERT then fails on the
  constraint. Both paths surface as ErrorKind.EMAIL_ALREADY_EXISTS [R1].

  Self-registration is decided here, not in the form layer: register_user()
  always stores role="user" whatever the client asked for.

DB path: auth/segregate_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Credential
from auth.policy import ADMIN, USER, is_valid_role
from auth.tokens import hash_password
from core.errors import AppError, ErrorKind

logger = logging.getLogger("segregate.auth")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'segregate_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=USER),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Credential records.

    Usage:
        store = CredentialStore()
        store.create_credential(Credential(name="Ada", email="ada@x.com", hashed_password=hash_password("secret")))
        credential = store.find_by_email("ada@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(select(1)).scalar() == 1

    def find_by_email(self, email: str) -> Credential | None:
        """Look up a credential by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_credential(row) if row is not None else None

    def get_by_id(self, user_id: int) -> Credential | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def list_credentials(self, role: Optional[str] = None, limit: int = 10, offset: int = 0) -> list[Credential]:
        """Return credentials newest first, optionally filtered by role."""
        query = _users.select()
        if role is not None:
            query = query.where(_users.c.role == role)
        query = query.order_by(_users.c.created_at.desc(), _users.c.id.desc()).limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_credential(r) for r in rows]

    def count_credentials(self, role: Optional[str] = None) -> int:
        query = select(func.count()).select_from(_users)
        if role is not None:
            query = query.where(_users.c.role == role)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_credential(self, credential: Credential) -> Credential:
        """Insert a credential and return it with id and created_at filled in.

        Raises AppError(EMAIL_ALREADY_EXISTS) when the email is taken, whether
        the pre-check or the UNIQUE constraint catches it [R1].
        """
        if not is_valid_role(credential.role):
            raise ValueError(f"Unknown role: {credential.role!r}")
        email = normalize_email(credential.email)
        if self.find_by_email(email) is not None:
            raise AppError(ErrorKind.EMAIL_ALREADY_EXISTS)

        created_at = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        name=credential.name,
                        email=email,
                        hashed_password=credential.hashed_password,
                        role=credential.role,
                        created_at=created_at,
                    )
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            logger.info("Concurrent signup lost the uniqueness race for an existing email")
            raise AppError(ErrorKind.EMAIL_ALREADY_EXISTS) from exc

        return Credential(
            id=user_id,
            name=credential.name,
            email=email,
            hashed_password=credential.hashed_password,
            role=credential.role,
            created_at=created_at,
        )

    def update_role(self, user_id: int, role: str) -> bool:
        """Change a user's role. Returns False if the user does not exist.

        Demoting an admin is one conditional UPDATE that only matches while
        another admin remains, so two admins demoting each other at once cannot
        both succeed. Raises AppError(LAST_ADMIN) when the guard blocks it [M4].
        """
        if not is_valid_role(role):
            raise ValueError(f"Unknown role: {role!r}")
        query = _users.update().where(_users.c.id == user_id).values(role=role)
        if role != ADMIN:
            other = _users.alias("other")
            other_admins = (
                select(func.count())
                .select_from(other)
                .where(other.c.role == ADMIN, other.c.id != user_id)
                .scalar_subquery()
            )
            query = query.where(or_(_users.c.role != ADMIN, other_admins > 0))
        with self.engine.begin() as conn:
            if conn.execute(query).rowcount > 0:
                return True
            exists = conn.execute(select(_users.c.id).where(_users.c.id == user_id)).first()
        if exists is not None:
            raise AppError(ErrorKind.LAST_ADMIN)
        return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Self-registration policy
# ---------------------------------------------------------------------------


def register_user(
    store: CredentialStore,
    name: str,
    email: str,
    password: str,
    requested_role: Optional[str] = None,
) -> Credential:
    """Create a self-registered account. The stored role is always "user".

    requested_role is accepted so the caller can pass the raw form value
    through; anything other than "user" is logged and discarded. Privileged
    roles are assigned only through the admin routes.
    """
    if requested_role not in (None, USER):
        logger.warning("Signup requested role %r for %s; coerced to user", requested_role, normalize_email(email))
    return store.create_credential(
        Credential(name=name, email=email, hashed_password=hash_password(password), role=USER)
    )


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    return Credential(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        created_at=row.created_at,
    )
