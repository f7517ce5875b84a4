"""Repository adapters - Database and in-memory implementations."""

from .memory import (
    InMemoryAccountRepository,
    InMemoryEventRecorder,
    InMemoryFlowStateStore,
    InMemoryInviteRepository,
    InMemoryVerificationRepository,
    MemoryDatabase,
)
from .postgres import (
    PostgresAccountRepository,
    PostgresEventRecorder,
    PostgresFlowStateStore,
    PostgresInviteRepository,
    PostgresVerificationRepository,
    run_migrations,
)

__all__ = [
    "InMemoryAccountRepository",
    "InMemoryEventRecorder",
    "InMemoryFlowStateStore",
    "InMemoryInviteRepository",
    "InMemoryVerificationRepository",
    "MemoryDatabase",
    "PostgresAccountRepository",
    "PostgresEventRecorder",
    "PostgresFlowStateStore",
    "PostgresInviteRepository",
    "PostgresVerificationRepository",
    "run_migrations",
]
