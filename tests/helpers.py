"""
Test helpers - fakes for the outbound ports and data seeding functions.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from schoolgate.adapters.storage import Storage
from schoolgate.domain.models import AssignmentStatus, Invite, NewAccount, Role
from schoolgate.domain.passwords import hash_password

# bcrypt's minimum cost keeps the suite fast
TEST_ROUNDS = 4

TEST_SECRET = "test-secret-key-with-at-least-32-bytes"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSmsSender:
    """SmsSender fake keeping every message."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def send(self, to: str, body: str) -> None:
        self.messages.append((to, body))

    @property
    def last_code(self) -> str:
        return self.messages[-1][1][-4:]


class RecordingMailer:
    """Mailer fake keeping every confirmation request."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, UUID]] = []

    def send_confirmation_instructions(self, email: str, account_id: UUID) -> None:
        self.sent.append((email, account_id))


def add_invite(
    storage: Storage,
    kind: str = Role.STUDENT.value,
    token: str | None = None,
    **overrides,
) -> Invite:
    """Store an invite with fresh school and class ids."""
    invite = Invite(
        token=token or f"invite-{uuid4().hex[:12]}",
        kind=kind,
        school_id=overrides.pop("school_id", uuid4()),
        school_class_id=overrides.pop("school_class_id", uuid4()),
        **overrides,
    )
    storage.invites.add_invite(invite)
    return invite


def add_account(
    storage: Storage,
    email: str = "existing@example.com",
    password: str = "secret123",
    phone: str | None = None,
    role: Role | None = None,
) -> UUID:
    """Store an account directly through a unit of work."""
    with storage.accounts.unit_of_work() as unit_of_work:
        account_id = unit_of_work.add_account(
            NewAccount(
                email=email,
                password_hash=hash_password(password, TEST_ROUNDS),
                phone=phone,
                first_name="Ala",
                last_name="Nowak",
            )
        )
        if role is not None:
            unit_of_work.add_role_assignment(account_id, role, None, AssignmentStatus.APPROVED)
    return account_id
