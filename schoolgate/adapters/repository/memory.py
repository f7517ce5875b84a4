"""
In-memory repository adapters - Implement the domain ports without a database.

Used by the `memory` storage backend (local development) and by the test
suite. All repositories share one MemoryDatabase guarded by a re-entrant
lock; a unit of work snapshots the tables and restores them if the block
raises, mirroring a database transaction rollback.
"""

import copy
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from uuid import UUID, uuid4

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


@dataclass
class MemoryDatabase:
    """Tables backing the in-memory adapters."""

    accounts: dict[UUID, Account] = field(default_factory=dict)
    role_assignments: dict[tuple[UUID, str, UUID | None], str] = field(default_factory=dict)
    class_enrollments: dict[tuple[UUID, UUID], str] = field(default_factory=dict)
    invites: dict[str, Invite] = field(default_factory=dict)
    verifications: dict[str, VerificationRecord] = field(default_factory=dict)
    flows: dict[str, dict] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock)

    _TABLES = (
        "accounts",
        "role_assignments",
        "class_enrollments",
        "invites",
        "verifications",
        "flows",
        "events",
    )

    def snapshot(self) -> dict:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._TABLES}

    def restore(self, snapshot: dict) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)


class InMemoryUnitOfWork:
    """Implements RegistrationUnitOfWork against a MemoryDatabase."""

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def add_account(self, account: NewAccount) -> UUID:
        email = account.email.lower()
        if any(existing.email.lower() == email for existing in self._db.accounts.values()):
            raise EmailAlreadyTaken(email)
        if account.phone is not None and any(
            existing.phone == account.phone for existing in self._db.accounts.values()
        ):
            raise PhoneAlreadyTaken(account.phone)

        account_id = uuid4()
        self._db.accounts[account_id] = Account(
            id=account_id,
            email=email,
            password_hash=account.password_hash,
            phone=account.phone,
            first_name=account.first_name,
            last_name=account.last_name,
            birthdate=account.birthdate,
            locale=account.locale,
            marketing_opt_in=account.marketing_opt_in,
            phone_verified=account.phone_verified,
            created_at=datetime.now(timezone.utc),
        )
        return account_id

    def add_role_assignment(
        self, account_id: UUID, role: Role, scope_id: UUID | None, status: AssignmentStatus
    ) -> None:
        # Duplicate triplets are ignored, like ON CONFLICT DO NOTHING
        self._db.role_assignments.setdefault((account_id, role.value, scope_id), status.value)

    def add_class_enrollment(
        self, account_id: UUID, school_class_id: UUID, status: AssignmentStatus
    ) -> None:
        self._db.class_enrollments.setdefault((account_id, school_class_id), status.value)

    def consume_invite(self, token: str, now: datetime) -> bool:
        invite = self._db.invites.get(token)
        if invite is None or invite.consumed or invite.is_expired(now):
            return False
        self._db.invites[token] = replace(invite, consumed_at=now)
        return True


class InMemoryAccountRepository:
    """Implements AccountRepository protocol over a MemoryDatabase."""

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def get_account(self, account_id: UUID) -> Account | None:
        with self._db.lock:
            return self._db.accounts.get(account_id)

    def find_by_email(self, email: str) -> Account | None:
        email = email.strip().lower()
        with self._db.lock:
            return next(
                (account for account in self._db.accounts.values() if account.email.lower() == email),
                None,
            )

    def find_by_phone(self, phone: str) -> Account | None:
        with self._db.lock:
            return next(
                (account for account in self._db.accounts.values() if account.phone == phone),
                None,
            )

    def has_role(self, account_id: UUID, role: Role) -> bool:
        with self._db.lock:
            return any(
                key[0] == account_id and key[1] == role.value for key in self._db.role_assignments
            )

    def mark_phone_verified(self, account_id: UUID) -> None:
        with self._db.lock:
            account = self._db.accounts.get(account_id)
            if account is not None:
                self._db.accounts[account_id] = replace(account, phone_verified=True)

    def role_assignments(self, account_id: UUID) -> dict[tuple[str, UUID | None], str]:
        """(role, scope_id) -> status for one account."""
        with self._db.lock:
            return {
                (role, scope_id): status
                for (owner, role, scope_id), status in self._db.role_assignments.items()
                if owner == account_id
            }

    def class_enrollments(self, account_id: UUID) -> dict[UUID, str]:
        """school_class_id -> status for one account."""
        with self._db.lock:
            return {
                school_class_id: status
                for (owner, school_class_id), status in self._db.class_enrollments.items()
                if owner == account_id
            }

    @contextmanager
    def unit_of_work(self) -> Iterator[InMemoryUnitOfWork]:
        with self._db.lock:
            snapshot = self._db.snapshot()
            try:
                yield InMemoryUnitOfWork(self._db)
            except BaseException:
                self._db.restore(snapshot)
                raise


class InMemoryInviteRepository:
    """Implements InviteRepository protocol over a MemoryDatabase."""

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def get_invite(self, token: str) -> Invite | None:
        with self._db.lock:
            return self._db.invites.get(token)

    def add_invite(self, invite: Invite) -> None:
        with self._db.lock:
            self._db.invites[invite.token] = invite


class InMemoryVerificationRepository:
    """Implements VerificationRepository protocol over a MemoryDatabase."""

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def get_record(self, target: str) -> VerificationRecord | None:
        with self._db.lock:
            return self._db.verifications.get(target)

    def save_record(self, target: str, record: VerificationRecord) -> None:
        with self._db.lock:
            self._db.verifications[target] = record


class InMemoryFlowStateStore:
    """Implements FlowStateStore protocol; stores serialized flow state."""

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def load(self, flow_id: str) -> FlowState | None:
        with self._db.lock:
            payload = self._db.flows.get(flow_id)
        return FlowState.from_dict(payload) if payload is not None else None

    def save(self, flow_id: str, state: FlowState) -> None:
        with self._db.lock:
            self._db.flows[flow_id] = state.to_dict()

    def delete(self, flow_id: str) -> None:
        with self._db.lock:
            self._db.flows.pop(flow_id, None)

    def delete_expired(self, now: datetime) -> int:
        with self._db.lock:
            expired = [
                flow_id
                for flow_id, payload in self._db.flows.items()
                if FlowState.from_dict(payload).is_expired(now)
            ]
            for flow_id in expired:
                del self._db.flows[flow_id]
        return len(expired)


class InMemoryEventRecorder:
    """Implements EventRecorder protocol by appending to a list."""

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def record(self, event: Event) -> None:
        with self._db.lock:
            self._db.events.append(event)
        logger.debug("Event %s recorded for %s", event.event_type, event.account_id)
