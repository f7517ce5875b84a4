"""
PostgreSQL repository adapters - Implement the domain ports via psycopg3.

All SQL is raw and parameterized.

Concurrency Design - Invite Consumption:
---------------------------------------
Account creation runs in a single transaction (PostgresUnitOfWork):

1. INSERT account (UNIQUE indexes on LOWER(email) and phone reject duplicates)
2. INSERT role assignment / class enrollment (ON CONFLICT DO NOTHING)
3. UPDATE invites SET consumed_at = ... WHERE consumed_at IS NULL

Step 3 is a compare-and-set: of two concurrent registrations with one
token, the second UPDATE waits on the first's row lock, then matches zero
rows, and its whole transaction rolls back. No account exists without its
consumed invite and vice versa.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import UUID

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from schoolgate.domain.exceptions import EmailAlreadyTaken, PhoneAlreadyTaken
from schoolgate.domain.flow_state import FlowState
from schoolgate.domain.models import (
    Account,
    AssignmentStatus,
    Event,
    Invite,
    NewAccount,
    Role,
    VerificationRecord,
)

logger = logging.getLogger(__name__)

PHONE_UNIQUE_INDEX = "idx_accounts_phone_unique"

_ACCOUNT_COLUMNS = """
    id, email, password_hash, phone, first_name, last_name, birthdate, locale,
    marketing_opt_in, phone_verified, confirmed_at, created_at
"""


def _account_from_row(row: dict | None) -> Account | None:
    return Account(**row) if row is not None else None


class PostgresUnitOfWork:
    """
    Implements RegistrationUnitOfWork on one open transaction.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, cursor: psycopg.Cursor) -> None:
        self._cursor = cursor

    def add_account(self, account: NewAccount) -> UUID:
        sql = """
            INSERT INTO accounts (
                email, password_hash, phone, first_name, last_name, birthdate,
                locale, marketing_opt_in, phone_verified
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """
        try:
            self._cursor.execute(
                sql,
                (
                    account.email.lower(),
                    account.password_hash,
                    account.phone,
                    account.first_name,
                    account.last_name,
                    account.birthdate,
                    account.locale,
                    account.marketing_opt_in,
                    account.phone_verified,
                ),
            )
        except psycopg.errors.UniqueViolation as exc:
            if exc.diag.constraint_name == PHONE_UNIQUE_INDEX:
                raise PhoneAlreadyTaken(account.phone) from exc
            raise EmailAlreadyTaken(account.email) from exc
        return self._cursor.fetchone()["id"]

    def add_role_assignment(
        self, account_id: UUID, role: Role, scope_id: UUID | None, status: AssignmentStatus
    ) -> None:
        self._cursor.execute(
            """
            INSERT INTO role_assignments (account_id, role, scope_id, status)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            """,
            (account_id, role.value, scope_id, status.value),
        )

    def add_class_enrollment(
        self, account_id: UUID, school_class_id: UUID, status: AssignmentStatus
    ) -> None:
        self._cursor.execute(
            """
            INSERT INTO class_enrollments (account_id, school_class_id, status)
            VALUES (%s, %s, %s)
            ON CONFLICT (account_id, school_class_id) DO NOTHING
            """,
            (account_id, school_class_id, status.value),
        )

    def consume_invite(self, token: str, now: datetime) -> bool:
        self._cursor.execute(
            """
            UPDATE invites
            SET consumed_at = %s
            WHERE token = %s
              AND consumed_at IS NULL
              AND (expires_at IS NULL OR expires_at > %s)
            """,
            (now, token, now),
        )
        return self._cursor.rowcount == 1


class PostgresAccountRepository:
    """Implements AccountRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def get_account(self, account_id: UUID) -> Account | None:
        return self._fetch_account(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = %s", account_id)

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_account(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE LOWER(email) = LOWER(%s)",
            email.strip(),
        )

    def find_by_phone(self, phone: str) -> Account | None:
        return self._fetch_account(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE phone = %s",
            phone,
        )

    def has_role(self, account_id: UUID, role: Role) -> bool:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                "SELECT 1 FROM role_assignments WHERE account_id = %s AND role = %s LIMIT 1",
                (account_id, role.value),
            )
            return cursor.fetchone() is not None

    def mark_phone_verified(self, account_id: UUID) -> None:
        with self._pool.connection() as conn:
            conn.execute("UPDATE accounts SET phone_verified = TRUE WHERE id = %s", (account_id,))

    @contextmanager
    def unit_of_work(self) -> Iterator[PostgresUnitOfWork]:
        """
        Open a transaction; commits on clean exit, rolls back on error.
        """
        with self._pool.connection() as conn:
            with conn.transaction(), conn.cursor(row_factory=dict_row) as cursor:
                yield PostgresUnitOfWork(cursor)

    def _fetch_account(self, sql: str, value: object) -> Account | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (value,))
            return _account_from_row(cursor.fetchone())


class PostgresInviteRepository:
    """Implements InviteRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_invite(self, token: str) -> Invite | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(
                """
                SELECT token, kind, school_id, school_class_id, consumed_at, expires_at
                FROM invites
                WHERE token = %s
                """,
                (token,),
            )
            row = cursor.fetchone()
        return Invite(**row) if row is not None else None

    def add_invite(self, invite: Invite) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO invites (token, kind, school_id, school_class_id, consumed_at, expires_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    invite.token,
                    invite.kind,
                    invite.school_id,
                    invite.school_class_id,
                    invite.consumed_at,
                    invite.expires_at,
                ),
            )


class PostgresVerificationRepository:
    """Implements VerificationRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_record(self, target: str) -> VerificationRecord | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(
                "SELECT code, issued_at, attempts, verified FROM verification_codes WHERE target = %s",
                (target,),
            )
            row = cursor.fetchone()
        return VerificationRecord(**row) if row is not None else None

    def save_record(self, target: str, record: VerificationRecord) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO verification_codes (target, code, issued_at, attempts, verified)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (target) DO UPDATE
                SET code = EXCLUDED.code,
                    issued_at = EXCLUDED.issued_at,
                    attempts = EXCLUDED.attempts,
                    verified = EXCLUDED.verified
                """,
                (target, record.code, record.issued_at, record.attempts, record.verified),
            )


class PostgresFlowStateStore:
    """
    Implements FlowStateStore protocol via a JSONB column.

    Last write wins: concurrent submissions for one flow are not serialized.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def load(self, flow_id: str) -> FlowState | None:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("SELECT data FROM wizard_flows WHERE flow_id = %s", (flow_id,))
            row = cursor.fetchone()
        return FlowState.from_dict(row[0]) if row is not None else None

    def save(self, flow_id: str, state: FlowState) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO wizard_flows (flow_id, data, expires_at, updated_at)
                VALUES (%s, %s, %s, NOW())
                ON CONFLICT (flow_id) DO UPDATE
                SET data = EXCLUDED.data,
                    expires_at = EXCLUDED.expires_at,
                    updated_at = NOW()
                """,
                (flow_id, Jsonb(state.to_dict()), state.expires_at),
            )

    def delete(self, flow_id: str) -> None:
        with self._pool.connection() as conn:
            conn.execute("DELETE FROM wizard_flows WHERE flow_id = %s", (flow_id,))

    def delete_expired(self, now: datetime) -> int:
        with self._pool.connection() as conn:
            cursor = conn.execute("DELETE FROM wizard_flows WHERE expires_at <= %s", (now,))
            return cursor.rowcount


class PostgresEventRecorder:
    """
    Implements EventRecorder protocol via the events table.

    A failing insert is logged and does not break the calling flow.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def record(self, event: Event) -> None:
        try:
            with self._pool.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO events (event_type, account_id, client, data, occurred_at)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        event.event_type,
                        event.account_id,
                        event.client,
                        Jsonb(event.data),
                        event.occurred_at,
                    ),
                )
        except psycopg.Error as e:
            logger.error("Failed to record event %s: %s", event.event_type, e)


MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


def run_migrations(pool: ConnectionPool, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """
    Apply every `*.sql` file in `migrations_dir`, in filename order.

    The scripts are idempotent and run on every startup. Each file runs in
    its own transaction, so a failing script leaves the earlier ones applied.

    Returns:
        Names of the applied files

    Raises:
        RuntimeError: If a script fails
    """
    scripts = sorted(migrations_dir.glob("*.sql")) if migrations_dir.is_dir() else []
    if not scripts:
        logger.warning("No migrations found in %s", migrations_dir)
        return []

    applied = []
    for script in scripts:
        try:
            with pool.connection() as conn, conn.transaction():
                conn.execute(script.read_text(encoding="utf-8"))
        except psycopg.Error as exc:
            logger.error("Migration %s failed: %s", script.name, exc)
            raise RuntimeError(f"Database migration failed: {script.name}") from exc
        applied.append(script.name)
        logger.debug("Applied migration %s", script.name)

    logger.info("Schema up to date (%d migrations)", len(applied))
    return applied
