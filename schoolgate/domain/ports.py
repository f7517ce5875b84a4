"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols through
structural subtyping.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from .flow_state import FlowState
from .models import Account, AssignmentStatus, Event, Invite, NewAccount, Role, VerificationRecord


class VerifyOutcome(Enum):
    """
    Result of a one-time code verification attempt.

    EXPIRED is reported even for a matching code so the client can tell
    "request a new code" apart from "re-enter the code".
    """

    OK = "ok"
    INVALID = "invalid"
    EXPIRED = "expired"
    NO_REQUEST = "no_request"
    LOCKED = "locked"


class VerificationRepository(Protocol):
    """Port interface for one-time code persistence."""

    def get_record(self, target: str) -> VerificationRecord | None:
        """Return the verification record for a target, if any."""
        ...

    def save_record(self, target: str, record: VerificationRecord) -> None:
        """Insert or overwrite the verification record for a target."""
        ...


class RegistrationUnitOfWork(Protocol):
    """
    Transactional writer used while creating an account.

    Everything written through one unit of work commits together when the
    context manager exits cleanly and is discarded when it raises.
    """

    def add_account(self, account: NewAccount) -> UUID:
        """
        Insert an account row.

        Raises:
            EmailAlreadyTaken: If the email is already registered
        """
        ...

    def add_role_assignment(
        self, account_id: UUID, role: Role, scope_id: UUID | None, status: AssignmentStatus
    ) -> None:
        """Insert a role assignment for the account."""
        ...

    def add_class_enrollment(
        self, account_id: UUID, school_class_id: UUID, status: AssignmentStatus
    ) -> None:
        """Insert a class enrollment for the account."""
        ...

    def consume_invite(self, token: str, now: datetime) -> bool:
        """
        Atomically mark an invite consumed.

        Compare-and-set: succeeds only for an unconsumed, unexpired invite.

        Returns:
            True if this call consumed the invite, False otherwise
        """
        ...


class AccountRepository(Protocol):
    """Port interface for account persistence."""

    def get_account(self, account_id: UUID) -> Account | None: ...

    def find_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup by email."""
        ...

    def find_by_phone(self, phone: str) -> Account | None: ...

    def has_role(self, account_id: UUID, role: Role) -> bool: ...

    def mark_phone_verified(self, account_id: UUID) -> None: ...

    def unit_of_work(self) -> AbstractContextManager[RegistrationUnitOfWork]:
        """Open a transaction for account creation."""
        ...


class InviteRepository(Protocol):
    """Port interface for invite lookup."""

    def get_invite(self, token: str) -> Invite | None: ...

    def add_invite(self, invite: Invite) -> None: ...


class FlowStateStore(Protocol):
    """Port interface for registration wizard state, keyed by flow id."""

    def load(self, flow_id: str) -> FlowState | None: ...

    def save(self, flow_id: str, state: FlowState) -> None: ...

    def delete(self, flow_id: str) -> None: ...

    def delete_expired(self, now: datetime) -> int:
        """Drop flows whose expiry is at or before `now`; returns how many."""
        ...


class SmsSender(Protocol):
    """Port interface for outbound SMS (fire-and-forget)."""

    def send(self, to: str, body: str) -> None: ...


class Mailer(Protocol):
    """Port interface for account emails."""

    def send_confirmation_instructions(self, email: str, account_id: UUID) -> None:
        """Send the email-confirmation message for a new account."""
        ...


class EventRecorder(Protocol):
    """Port interface for the audit event log."""

    def record(self, event: Event) -> None: ...


class TokenSigner(Protocol):
    """Port interface for signed access tokens."""

    def encode(self, claims: dict[str, Any]) -> str: ...

    def decode(self, token: str) -> dict[str, Any] | None:
        """
        Decode and verify a token.

        Returns:
            Claims, or None when the token has expired

        Raises:
            InvalidAccessToken: For any other invalid token
        """
        ...
