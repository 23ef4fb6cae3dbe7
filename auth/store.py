"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and OTP challenges.

Pattern: Repository + Data Mapper (same as vault/store.py).
AccountStore is the repository; _row_to_account / _row_to_challenge are the
mappers. Services and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Lockout counters and challenge consumption are mutated with single-statement
  conditional UPDATEs, never read-modify-write in Python. Two concurrent
  failed logins for the same account both land in the counter, and two
  concurrent verifications of the same code cannot both win [C2].

DB path: submitvault.db at the project root unless DATABASE_URL is set.

Layer rule: no imports from api/, audit/, or vault/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Account, Challenge, Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False),
    Column("mfa_enabled", Boolean, nullable=False, server_default="1"),
    Column("failed_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),  # ISO 8601, NULL = not locked
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_challenges = Table(
    "challenges",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, nullable=False, index=True),
    Column("code", String(6), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("consumed", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
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


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and Challenge entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account_id = store.create_account(Account(username="ada", role=Role.SUBMITTER, hashed_password=h))
        account = store.get_by_username("ada")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def has_accounts(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (result or 0) > 0

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    username=account.username,
                    hashed_password=account.hashed_password,
                    role=Role(account.role).value,
                    mfa_enabled=account.mfa_enabled,
                    failed_attempts=0,
                    locked_until=None,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_password(self, account_id: int, hashed_password: str) -> bool:
        """Replace the password verifier. Returns False if the account does not exist."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(hashed_password=hashed_password, updated_at=_now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Lockout state [C2]
    # ------------------------------------------------------------------

    def register_failure(self, account_id: int, threshold: int, lock_until: str) -> Account | None:
        """Atomically count one failed verification and lock at the threshold.

        One UPDATE statement: SET expressions see the pre-update row, so
        `failed_attempts + 1 >= threshold` is evaluated against the value this
        statement is incrementing. When the threshold is reached the counter
        resets to zero and locked_until is stamped, so the next window starts
        clean once the lock elapses.

        Returns the account as it stands after the update.
        """
        reached = _accounts.c.failed_attempts + 1 >= threshold
        with self.engine.begin() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(
                    failed_attempts=case((reached, 0), else_=_accounts.c.failed_attempts + 1),
                    locked_until=case((reached, lock_until), else_=_accounts.c.locked_until),
                    updated_at=_now_iso(),
                )
            )
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def reset_failures(self, account_id: int) -> None:
        """Clear the failure counter and any lock after a successful full login."""
        with self.engine.begin() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(failed_attempts=0, locked_until=None, updated_at=_now_iso())
            )

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    def replace_challenge(self, challenge: Challenge) -> int:
        """Invalidate every unconsumed challenge for the account, then insert this one.

        Both statements run in one transaction so there is never a window in
        which two unconsumed challenges exist for the same account.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _challenges.update()
                .where(_challenges.c.account_id == challenge.account_id)
                .where(_challenges.c.consumed == False)  # noqa: E712
                .values(consumed=True)
            )
            result = conn.execute(
                _challenges.insert().values(
                    account_id=challenge.account_id,
                    code=challenge.code,
                    expires_at=challenge.expires_at,
                    consumed=False,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_latest_challenge(self, account_id: int) -> Challenge | None:
        """Return the newest challenge for an account, consumed or not."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _challenges.select()
                .where(_challenges.c.account_id == account_id)
                .order_by(_challenges.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_challenge(row) if row is not None else None

    def consume_challenge(self, challenge_id: int) -> bool:
        """Compare-and-set consumed from False to True.

        Returns True only for the single caller that flipped the flag.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _challenges.update()
                .where((_challenges.c.id == challenge_id) & (_challenges.c.consumed == False))  # noqa: E712
                .values(consumed=True)
            )
        return result.rowcount == 1

    def ping(self) -> bool:
        """Cheap connectivity check for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        mfa_enabled=bool(row.mfa_enabled),
        failed_attempts=row.failed_attempts,
        locked_until=row.locked_until,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_challenge(row) -> Challenge:
    return Challenge(
        id=row.id,
        account_id=row.account_id,
        code=row.code,
        expires_at=row.expires_at,
        consumed=bool(row.consumed),
        created_at=row.created_at,
    )
