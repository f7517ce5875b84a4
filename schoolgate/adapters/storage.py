"""
Storage wiring - bundles the repository adapters for one backend.
"""

from dataclasses import dataclass

from psycopg_pool import ConnectionPool

from schoolgate.adapters.repository.memory import (
    InMemoryAccountRepository,
    InMemoryEventRecorder,
    InMemoryFlowStateStore,
    InMemoryInviteRepository,
    InMemoryVerificationRepository,
    MemoryDatabase,
)
from schoolgate.adapters.repository.postgres import (
    PostgresAccountRepository,
    PostgresEventRecorder,
    PostgresFlowStateStore,
    PostgresInviteRepository,
    PostgresVerificationRepository,
)
from schoolgate.domain.ports import (
    AccountRepository,
    EventRecorder,
    FlowStateStore,
    InviteRepository,
    VerificationRepository,
)


@dataclass(frozen=True)
class Storage:
    """Repository adapters sharing one backend."""

    accounts: AccountRepository
    invites: InviteRepository
    verifications: VerificationRepository
    flows: FlowStateStore
    events: EventRecorder


def build_postgres_storage(pool: ConnectionPool) -> Storage:
    return Storage(
        accounts=PostgresAccountRepository(pool),
        invites=PostgresInviteRepository(pool),
        verifications=PostgresVerificationRepository(pool),
        flows=PostgresFlowStateStore(pool),
        events=PostgresEventRecorder(pool),
    )


def build_memory_storage(db: MemoryDatabase | None = None) -> Storage:
    db = db or MemoryDatabase()
    return Storage(
        accounts=InMemoryAccountRepository(db),
        invites=InMemoryInviteRepository(db),
        verifications=InMemoryVerificationRepository(db),
        flows=InMemoryFlowStateStore(db),
        events=InMemoryEventRecorder(db),
    )
