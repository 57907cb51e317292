"""
auth/store.py -- Credential Store: SQLAlchemy Core persistence for identities and roles.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_identity / _row_to_role are the mappers. Service code never touches
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  password_hash and refresh_token_hash are excluded from the default column
  projection. A caller has to ask for them by flag (include_password_hash /
  include_refresh_hash), so an Identity loaded for display cannot leak them.

  UNIQUE(users.email) is the real guarantor of email uniqueness. The
  application-level exists_by_email() check is only a fast path; two
  concurrent registrations can both pass it, and the loser's INSERT fails
  here with UniqueViolation.

Connections: every method opens a connection, runs its statement(s) and
releases it before returning. No connection is held while the caller hashes
or signs.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    true,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Identity, Role, RoleCode

logger = logging.getLogger("scribe.store")

_DEFAULT_DB_URL = "sqlite:///scribe.db"

# Seeded at deployment time. (code, display name)
DEFAULT_ROLES: tuple[tuple[RoleCode, str], ...] = (
    (RoleCode.ADMIN, "administrador"),
    (RoleCode.BLOGGER, "blogger"),
)


class UniqueViolation(Exception):
    """An INSERT hit a UNIQUE constraint (duplicate email)."""


class UnknownRoleCode(ValueError):
    """A roles row carries a code outside RoleCode (e.g. a legacy seed)."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("code", String(30), nullable=False, unique=True),
    Column("name", Text, nullable=False),
)

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("name", Text, nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("refresh_token_hash", Text),  # NULL = no live refresh token
    Column("refresh_token_expires_at", String(32)),  # ISO 8601 UTC
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("role_id", String(36), ForeignKey("roles.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns every identity query returns. Credential columns are opt-in.
_PUBLIC_COLUMNS = (
    _users.c.id,
    _users.c.name,
    _users.c.email,
    _users.c.is_active,
    _users.c.refresh_token_expires_at,
    _users.c.created_at,
    _users.c.updated_at,
    _roles.c.id.label("role_id"),
    _roles.c.code.label("role_code"),
    _roles.c.name.label("role_name"),
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


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Identity and Role entities.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        store.seed_roles()
        role = store.find_role_by_code(RoleCode.BLOGGER)
        saved = store.insert(Identity(name="Flor", email="a@a.com", role=role, password_hash=digest))
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def seed_roles(self) -> int:
        """Insert the default roles that are missing. Returns how many were created.

        Idempotent -- safe to run on every deployment.
        """
        created = 0
        with self.engine.connect() as conn:
            for code, name in DEFAULT_ROLES:
                exists = conn.execute(select(_roles.c.id).where(_roles.c.code == code.value)).first()
                if exists is None:
                    conn.execute(_roles.insert().values(id=str(uuid.uuid4()), code=code.value, name=name))
                    created += 1
            conn.commit()
        if created:
            logger.info("Seeded %d role(s)", created)
        return created

    def find_role_by_code(self, code: RoleCode | str) -> Role | None:
        value = code.value if isinstance(code, RoleCode) else code
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.code == value)).fetchone()
        return _row_to_role(row) if row is not None else None

    def find_role_by_name(self, name: str) -> Role | None:
        """Look up a role by display name. Used only as a fallback for old seeds.

        Raises UnknownRoleCode if the matching row's code is not a RoleCode.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def _identity_select(self, include_password_hash: bool = False, include_refresh_hash: bool = False):
        columns = list(_PUBLIC_COLUMNS)
        if include_password_hash:
            columns.append(_users.c.password_hash)
        if include_refresh_hash:
            columns.append(_users.c.refresh_token_hash)
        return select(*columns).select_from(_users.join(_roles, _users.c.role_id == _roles.c.id))

    def find_by_email(self, email: str, include_password_hash: bool = False) -> Identity | None:
        """Look up an identity by normalized email. Returns None if not found."""
        query = self._identity_select(include_password_hash=include_password_hash).where(_users.c.email == email)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_identity(row) if row is not None else None

    def find_by_id(self, identity_id: str, include_refresh_hash: bool = False) -> Identity | None:
        """Look up an identity by primary key. Returns None if not found."""
        query = self._identity_select(include_refresh_hash=include_refresh_hash).where(_users.c.id == identity_id)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_identity(row) if row is not None else None

    def exists_by_email(self, email: str) -> bool:
        with self.engine.connect() as conn:
            count = conn.execute(select(func.count()).select_from(_users).where(_users.c.email == email)).scalar()
        return (count or 0) > 0

    # ------------------------------------------------------------------
    # Identity writes
    # ------------------------------------------------------------------

    def insert(self, identity: Identity) -> Identity:
        """Insert a new identity and return it with id and timestamps assigned.

        Raises UniqueViolation if the email is already taken. Other integrity
        errors propagate unchanged.
        """
        if identity.role.id is None:
            raise ValueError("identity.role must be a persisted role")
        if not identity.password_hash:
            raise ValueError("identity.password_hash is required")
        identity_id = str(uuid.uuid4())
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=identity_id,
                        name=identity.name,
                        email=identity.email,
                        password_hash=identity.password_hash,
                        refresh_token_hash=None,
                        refresh_token_expires_at=None,
                        is_active=identity.is_active,
                        role_id=identity.role.id,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            message = str(getattr(exc, "orig", exc)).lower()
            if "unique" in message or "duplicate" in message:
                raise UniqueViolation("email already registered") from exc
            raise
        return Identity(
            id=identity_id,
            name=identity.name,
            email=identity.email,
            role=identity.role,
            is_active=identity.is_active,
            created_at=now,
            updated_at=now,
        )

    def update_refresh_state(self, identity_id: str, token_hash: str | None, expires_at: datetime | None) -> int:
        """Overwrite the single refresh slot. Returns the number of rows updated.

        Passing (None, None) revokes whatever refresh token was live. The
        write is unconditional: any previously issued refresh token stops
        matching the moment this commits.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == identity_id)
                .values(
                    refresh_token_hash=token_hash,
                    refresh_token_expires_at=_to_iso(expires_at),
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount

    def set_active(self, identity_id: str, is_active: bool) -> bool:
        """Enable or disable an identity. Returns True if a row was updated."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == identity_id).values(is_active=is_active, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_role(self, identity_id: str, code: RoleCode) -> bool:
        """Move an identity to another role. Returns False if the identity or role is missing."""
        role = self.find_role_by_code(code)
        if role is None:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == identity_id).values(role_id=role.id, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _role_code(value: str) -> RoleCode:
    try:
        return RoleCode(value)
    except ValueError:
        raise UnknownRoleCode(f"unknown role code {value!r}") from None


def _row_to_role(row) -> Role:
    return Role(id=row.id, code=_role_code(row.code), name=row.name)


def _row_to_identity(row) -> Identity:
    # Credential columns are only present when the query asked for them.
    mapping = row._mapping
    return Identity(
        id=row.id,
        name=row.name,
        email=row.email,
        role=Role(id=row.role_id, code=_role_code(row.role_code), name=row.role_name),
        password_hash=mapping.get("password_hash"),
        is_active=bool(row.is_active),
        refresh_token_hash=mapping.get("refresh_token_hash"),
        refresh_token_expires_at=_from_iso(row.refresh_token_expires_at),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
