"""
Domain models - Plain data carried between the domain and its ports.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class Role(str, Enum):
    """Role keys an account can hold."""

    TEACHER = "teacher"
    STUDENT = "student"


class AssignmentStatus(str, Enum):
    """Approval status of a role assignment or class enrollment."""

    PENDING = "pending"
    APPROVED = "approved"


class LoginChannel(str, Enum):
    """Client through which a session was established."""

    API = "api"
    WEB = "web"
    WEB_STUDENT = "web_student"


@dataclass(frozen=True)
class Account:
    """A registered person."""

    id: UUID
    email: str
    password_hash: str
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    birthdate: date | None = None
    locale: str = "pl"
    marketing_opt_in: bool = False
    phone_verified: bool = False
    confirmed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def confirmed(self) -> bool:
        return self.confirmed_at is not None


@dataclass(frozen=True)
class NewAccount:
    """Validated account fields ready for insertion."""

    email: str
    password_hash: str
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    birthdate: date | None = None
    locale: str = "pl"
    marketing_opt_in: bool = False
    phone_verified: bool = False


@dataclass(frozen=True)
class Invite:
    """
    Single-use invitation to register under a role and scope.

    `kind` is kept as a plain string: kinds other than teacher/student
    are representable and simply grant no role.
    """

    token: str
    kind: str
    school_id: UUID | None = None
    school_class_id: UUID | None = None
    consumed_at: datetime | None = None
    expires_at: datetime | None = None

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass(frozen=True)
class VerificationRecord:
    """Pending or completed one-time code verification for one target."""

    code: str | None
    issued_at: datetime
    attempts: int = 0
    verified: bool = False

    @property
    def pending(self) -> bool:
        return self.code is not None


@dataclass(frozen=True)
class Event:
    """Audit event."""

    event_type: str
    account_id: UUID | None
    client: str | None
    occurred_at: datetime
    data: dict[str, Any] = field(default_factory=dict)
