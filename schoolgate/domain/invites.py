"""
Invite gate - single-use, expiry-aware invite tokens.

Validation is a read-only check. Consumption happens separately, inside
the transaction that creates the account, as a compare-and-set so two
concurrent registrations with the same token cannot both succeed.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from .exceptions import InviteNotFound
from .models import Invite
from .one_time_code import utcnow
from .ports import InviteRepository, RegistrationUnitOfWork


@dataclass
class InviteGate:
    """Validates and consumes invite tokens."""

    invites: InviteRepository
    clock: Callable[[], datetime] = field(default=utcnow)

    def validate(self, token: str | None) -> Invite:
        """
        Look up a usable invite.

        Raises:
            InviteNotFound: If the token is blank, unknown, consumed or expired
        """
        token = (token or "").strip()
        if not token:
            raise InviteNotFound("Token not found")

        invite = self.invites.get_invite(token)
        if invite is None or invite.consumed or invite.is_expired(self.clock()):
            raise InviteNotFound("Token not found")
        return invite

    def mark_used(self, invite: Invite, unit_of_work: RegistrationUnitOfWork) -> None:
        """
        Consume an invite within the account-creation transaction.

        Must only be called after the account row was written in the same
        unit of work.

        Raises:
            InviteNotFound: If another registration consumed it first
        """
        if not unit_of_work.consume_invite(invite.token, self.clock()):
            raise InviteNotFound("Token already used")
