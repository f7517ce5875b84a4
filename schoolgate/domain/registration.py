"""
Registration finalizer - invite-driven account creation.

Creation steps, in order, inside one unit of work:

1. account row (unconfirmed)
2. role assignment / class enrollment, branching on the invite kind:
   - teacher: pending teacher role on the invite's school
   - student: pending enrollment in the invite's class (+ pending student role)
   - anything else: no role record
3. invite consumed (compare-and-set)

Either all three persist or none do. The confirmation email goes out only
after commit, so a failed attempt leaves the token usable for a retry.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from .exceptions import EmailAlreadyTaken, PhoneAlreadyTaken, ValidationFailed
from .forms import TAKEN, SignupForm
from .invites import InviteGate
from .models import AssignmentStatus, Invite, NewAccount, Role
from .passwords import DEFAULT_ROUNDS, hash_password
from .ports import AccountRepository, Mailer, RegistrationUnitOfWork

logger = logging.getLogger(__name__)

PENDING_APPROVAL = "pending_approval"


@dataclass(frozen=True)
class RegistrationResult:
    """Response payload of a successful invite registration."""

    user_id: UUID
    status: str = PENDING_APPROVAL


def grant_invite_roles(unit_of_work: RegistrationUnitOfWork, account_id: UUID, invite: Invite) -> None:
    """Write the role/enrollment rows an invite kind implies."""
    if invite.kind == Role.TEACHER.value:
        unit_of_work.add_role_assignment(
            account_id, Role.TEACHER, invite.school_id, AssignmentStatus.PENDING
        )
    elif invite.kind == Role.STUDENT.value:
        unit_of_work.add_role_assignment(
            account_id, Role.STUDENT, invite.school_id, AssignmentStatus.PENDING
        )
        if invite.school_class_id is not None:
            unit_of_work.add_class_enrollment(
                account_id, invite.school_class_id, AssignmentStatus.PENDING
            )
        else:
            logger.warning("Student invite %s has no class, enrollment skipped", invite.token)
    else:
        logger.info("Invite kind %r grants no role", invite.kind)


def create_account(
    accounts: AccountRepository,
    invite_gate: InviteGate,
    account: NewAccount,
    invite: Invite | None = None,
    fallback_role: Role | None = None,
) -> UUID:
    """
    Atomically create an account with its role records.

    Args:
        accounts: Account repository providing the unit of work
        invite_gate: Gate used to consume the invite
        account: Validated account fields
        invite: Validated invite, if the registration is invite-driven
        fallback_role: Approved unscoped role granted when there is no invite

    Returns:
        New account id

    Raises:
        ValidationFailed: If the email or phone was taken concurrently
        InviteNotFound: If the invite was consumed concurrently
    """
    try:
        with accounts.unit_of_work() as unit_of_work:
            account_id = unit_of_work.add_account(account)
            if invite is not None:
                grant_invite_roles(unit_of_work, account_id, invite)
                invite_gate.mark_used(invite, unit_of_work)
            elif fallback_role is not None:
                unit_of_work.add_role_assignment(
                    account_id, fallback_role, None, AssignmentStatus.APPROVED
                )
    except EmailAlreadyTaken:
        raise ValidationFailed({"email": [TAKEN]}) from None
    except PhoneAlreadyTaken:
        raise ValidationFailed({"phone": [TAKEN]}) from None

    logger.info("Account %s created", account_id)
    return account_id


def send_confirmation(mailer: Mailer, email: str, account_id: UUID) -> None:
    """Fire-and-forget confirmation email; failures are logged only."""
    try:
        mailer.send_confirmation_instructions(email, account_id)
    except Exception:
        logger.warning("Confirmation email to %s failed", email, exc_info=True)


@dataclass
class RegistrationFinalizer:
    """Domain service for invite-token registration (API path)."""

    accounts: AccountRepository
    invite_gate: InviteGate
    mailer: Mailer
    bcrypt_rounds: int = DEFAULT_ROUNDS
    default_locale: str = "pl"

    def create(self, invite_token: str | None, signup_params: Mapping[str, Any]) -> RegistrationResult:
        """
        Register an account from an invite token and signup fields.

        Returns:
            RegistrationResult with the new id and pending_approval status

        Raises:
            InviteNotFound: Token missing, unknown, consumed or expired
            ValidationFailed: Field-level errors; nothing is written
        """
        invite = self.invite_gate.validate(invite_token)

        parsed = SignupForm.parse(signup_params, default_locale=self.default_locale)
        if not parsed.ok:
            raise ValidationFailed(parsed.errors)
        signup = parsed.value

        if self.accounts.find_by_email(signup.email) is not None:
            raise ValidationFailed({"email": [TAKEN]})

        account_id = create_account(
            self.accounts,
            self.invite_gate,
            NewAccount(
                email=signup.email,
                password_hash=hash_password(signup.password, self.bcrypt_rounds),
                first_name=signup.first_name,
                last_name=signup.last_name,
                locale=signup.locale,
            ),
            invite=invite,
        )

        send_confirmation(self.mailer, signup.email, account_id)
        return RegistrationResult(user_id=account_id)
