"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper. Route, service
and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(username) and UNIQUE(email) are enforced by the schema. A write that
  violates either raises IntegrityError inside the store, which is converted
  to ValidationError(code="duplicate") -- a rejected write, not a crash.

Concurrency:
  Lockout bookkeeping (record_failed_login / reset_lockout) runs as
  conditional UPDATEs whose CASE expressions read the row's current values
  inside the database. Two simultaneous failures for one account therefore
  both count, and only one of them stamps the lock. No Python-side
  read-modify-write happens and no in-process lock is needed.

Timeouts:
  SQLite connections wait at most `timeout` seconds for a write lock; other
  backends bound pool checkout (and connect, for PostgreSQL) the same way.
  Any driver error, timeouts included, is re-raised as StorageError.

Timestamps are fixed-width ISO 8601 UTC strings (microsecond precision), so
string comparison in SQL matches chronological order.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import functools
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    case,
    create_engine,
    event,
    func,
    null,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Account
from core.errors import StorageError, ValidationError

logger = logging.getLogger("gatekeeper.store")

# Columns an update_account() caller may touch. Lockout fields are excluded --
# they change only through record_failed_login() / reset_lockout().
_UPDATABLE_FIELDS = frozenset({"username", "email", "role", "is_active", "hashed_password"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),  # normalized lower-case
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default="user"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),
    Column("failed_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),  # NULL = never locked / lock cleared
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(value: datetime) -> str:
    """Format an aware datetime as fixed-width ISO 8601 UTC."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def _storage_errors(method):
    """Re-raise driver failures from a store method as StorageError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", method.__name__, exc)
            raise StorageError("The account store is unavailable.") from exc

    return wrapper


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Usage:
        store = AccountStore(get_settings().database_url, timeout=5.0)
        account_id = store.create_account(Account(username="alice", email="alice@x.com", hashed_password=h))
        account = store.get_by_email("alice@x.com")
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 5.0) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        else:
            engine_kwargs["pool_timeout"] = timeout
            if db_url.startswith("postgresql"):
                connect_args["connect_timeout"] = max(1, math.ceil(timeout))
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @_storage_errors
    def ping(self) -> bool:
        """Run a trivial query. Used by the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(_accounts.select().limit(1)).fetchall()
        return True

    @_storage_errors
    def get_by_id(self, account_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    @_storage_errors
    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    @_storage_errors
    def find_conflict(self, username: str, email: str, exclude_id: str | None = None) -> Account | None:
        """Return an account already holding this username or email, if any.

        exclude_id skips the account being updated so an unchanged field does
        not conflict with itself.
        """
        c = _accounts.c
        query = _accounts.select().where(or_(c.username == username, c.email == normalize_email(email)))
        if exclude_id is not None:
            query = query.where(c.id != exclude_id)
        with self.engine.connect() as conn:
            row = conn.execute(query.limit(1)).fetchone()
        return _row_to_account(row) if row is not None else None

    @_storage_errors
    def list_accounts(self, page: int = 1, limit: int = 10, active_only: bool = True) -> tuple[list[Account], int]:
        """Return one page of accounts (newest first) and the total count.

        page is 1-based. The total counts the same filter as the page so
        clients can compute the page count.
        """
        c = _accounts.c
        query = _accounts.select()
        count_query = select(func.count()).select_from(_accounts)
        if active_only:
            query = query.where(c.is_active == 1)
            count_query = count_query.where(c.is_active == 1)
        query = query.order_by(c.created_at.desc(), c.id).offset((page - 1) * limit).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_account(r) for r in rows], total

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @_storage_errors
    def create_account(self, account: Account) -> str:
        """Insert a new account and return its assigned id.

        Raises ValidationError(code="duplicate") when the username or email is
        already taken, including when a concurrent request won the race
        between the caller's uniqueness check and this INSERT.
        """
        account_id = uuid.uuid4().hex
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _accounts.insert().values(
                        id=account_id,
                        username=account.username,
                        email=normalize_email(account.email),
                        hashed_password=account.hashed_password,
                        role=account.role,
                        is_active=1 if account.is_active else 0,
                        failed_attempts=0,
                        locked_until=None,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ValidationError("User already exists", code="duplicate") from exc
        return account_id

    @_storage_errors
    def update_account(self, account_id: str, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: username, email, role, is_active, hashed_password.
        Unknown keys raise ValueError -- column names come from a whitelist,
        never from request input. is_active is converted to int for SQLite.

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        fields["updated_at"] = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
                conn.commit()
        except IntegrityError as exc:
            raise ValidationError("Username or email already in use", code="duplicate") from exc
        return result.rowcount > 0

    @_storage_errors
    def delete_account(self, account_id: str) -> bool:
        """Permanently delete an account. Returns True if deleted, False if not found.

        The route layer refuses self-deletion before calling this method.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
            conn.commit()
        return result.rowcount > 0

    @_storage_errors
    def update_last_login(self, account_id: str, when: datetime | None = None) -> None:
        """Stamp last_login for the given account (defaults to now)."""
        stamp = to_iso(when) if when is not None else _now_iso()
        with self.engine.connect() as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(last_login=stamp))
            conn.commit()

    # ------------------------------------------------------------------
    # Lockout bookkeeping (atomic)
    # ------------------------------------------------------------------

    @_storage_errors
    def record_failed_login(
        self,
        account_id: str,
        now: datetime,
        max_attempts: int,
        lock_duration: timedelta,
    ) -> tuple[Account | None, bool]:
        """Count one failed login and set the lock once the threshold is reached.

        Two UPDATEs in one transaction. The first takes the row's write lock
        and counts the failure, reading the old values inside SQL:
          - lock expired (locked_until <= now): failed_attempts = 1, lock cleared
          - otherwise failed_attempts + 1; a lock still in force is untouched
        The second stamps locked_until = now + lock_duration only where no
        lock is set and failed_attempts has reached max_attempts. Its rowcount
        says whether this call set the lock; a concurrent caller blocks on the
        first statement and then finds the lock already present.

        Returns (account as persisted afterwards, lock_set). The account is
        None if the id does not exist.
        """
        c = _accounts.c
        expired = and_(c.locked_until.is_not(None), c.locked_until <= to_iso(now))
        count = (
            _accounts.update()
            .where(c.id == account_id)
            .values(
                failed_attempts=case((expired, 1), else_=c.failed_attempts + 1),
                locked_until=case((expired, null()), else_=c.locked_until),
            )
        )
        lock = (
            _accounts.update()
            .where(and_(c.id == account_id, c.locked_until.is_(None), c.failed_attempts >= max_attempts))
            .values(locked_until=to_iso(now + lock_duration))
        )
        with self.engine.connect() as conn:
            counted = conn.execute(count)
            locked = conn.execute(lock)
            row = conn.execute(_accounts.select().where(c.id == account_id)).fetchone()
            conn.commit()
        if counted.rowcount == 0 or row is None:
            return None, False
        return _row_to_account(row), locked.rowcount > 0

    @_storage_errors
    def reset_lockout(self, account_id: str) -> bool:
        """Clear failed_attempts and locked_until if either is set.

        The WHERE clause makes this a no-op for accounts already in the
        default state. Returns True if a row changed.
        """
        c = _accounts.c
        stmt = (
            _accounts.update()
            .where(and_(c.id == account_id, or_(c.failed_attempts != 0, c.locked_until.is_not(None))))
            .values(failed_attempts=0, locked_until=None)
        )
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        is_active=bool(row.is_active),
        last_login=row.last_login,
        failed_attempts=row.failed_attempts or 0,
        locked_until=datetime.fromisoformat(row.locked_until) if row.locked_until else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
