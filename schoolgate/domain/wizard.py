"""
Registration wizard - multi-step signup state machine.

Steps (strict linear order):

    profile -> verify_phone -> set_pin -> set_pin_confirm -> confirm_email

Every handler takes the current FlowState and returns a StepResult holding
the next FlowState. Failures leave the state untouched (apart from the
verification attempt counter, which lives in the verification record) and
report field errors; no transition happens on failure. Gate checks
(`FlowState.can_access`) are applied by the caller before dispatching.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from .exceptions import FieldErrors, InviteNotFound, ValidationFailed
from .flow_state import INVITE, PHONE, PIN_TEMP, PROFILE, USER, FlowState, WizardStep
from .forms import BIRTHDATE_FORMAT, INVALID, TAKEN, PinForm, ProfileForm, VerifyCodeForm
from .invites import InviteGate
from .models import Account, NewAccount, Role
from .one_time_code import OneTimeCodeService, utcnow
from .passwords import DEFAULT_ROUNDS, hash_password, verify_password
from .ports import AccountRepository, Mailer, VerifyOutcome
from .registration import create_account, send_confirmation

logger = logging.getLogger(__name__)

CODE_ERRORS = {
    VerifyOutcome.INVALID: "is incorrect",
    VerifyOutcome.EXPIRED: "has expired, request a new one",
    VerifyOutcome.NO_REQUEST: "was not requested",
    VerifyOutcome.LOCKED: "was blocked after too many attempts, request a new one",
}

# Fields that may be echoed back after a failed profile submission
SAFE_PROFILE_FIELDS = ("first_name", "last_name", "email", "phone", "birthdate", "marketing")


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of one step submission.

    On success `next_step` names the step to continue with. On failure
    `errors` is filled, `form` holds the safe submitted fields, and
    `redirect_to` is set when the failure means the flow must restart
    from an earlier step.
    """

    state: FlowState
    next_step: WizardStep | None = None
    errors: FieldErrors = field(default_factory=dict)
    form: dict[str, Any] = field(default_factory=dict)
    redirect_to: WizardStep | None = None
    outcome: VerifyOutcome | None = None

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class Completion:
    """Result of visiting the terminal step."""

    account: Account | None
    state: FlowState


def verification_target(flow_id: str) -> str:
    return f"wizard:{flow_id}"


@dataclass
class RegistrationWizard:
    """Step handlers for the phone + PIN signup wizard."""

    accounts: AccountRepository
    one_time_codes: OneTimeCodeService
    invite_gate: InviteGate
    mailer: Mailer
    bcrypt_rounds: int = DEFAULT_ROUNDS
    default_locale: str = "pl"
    clock: Callable[[], datetime] = field(default=utcnow)

    # === STEP 1: PROFILE ===

    def submit_profile(self, state: FlowState, flow_id: str, payload: Mapping[str, Any]) -> StepResult:
        """
        Validate the profile, reset later steps and send the first SMS code.
        """
        preserved = {key: payload[key] for key in SAFE_PROFILE_FIELDS if key in payload}
        parsed = ProfileForm.parse(payload, today=self.clock().date())
        if not parsed.ok:
            return StepResult(state=state, errors=parsed.errors, form=preserved)

        profile = parsed.value
        errors: FieldErrors = {}
        if self.accounts.find_by_email(profile.email) is not None:
            errors["email"] = [TAKEN]
        if self.accounts.find_by_phone(profile.phone) is not None:
            errors["phone"] = [TAKEN]
        if profile.invite_token:
            try:
                self.invite_gate.validate(profile.invite_token)
            except InviteNotFound:
                errors["invite_token"] = [INVALID]
        if errors:
            return StepResult(state=state, errors=errors, form=preserved)

        new_state = (
            state.without(PROFILE, PHONE, PIN_TEMP, USER, INVITE)
            .update(PROFILE, profile.to_flow())
            .update(PHONE, {"number": profile.phone, "verified": False})
        )
        if profile.invite_token:
            new_state = new_state.update(INVITE, {"token": profile.invite_token})

        self.one_time_codes.issue(verification_target(flow_id), profile.phone)
        return StepResult(state=new_state, next_step=WizardStep.VERIFY_PHONE)

    # === STEP 2: VERIFY PHONE ===

    def resend_code(self, state: FlowState, flow_id: str) -> str:
        """Issue a fresh code, replacing the pending one."""
        phone = state.section(PHONE).get("number") or state.section(PROFILE).get("phone")
        return self.one_time_codes.issue(verification_target(flow_id), phone)

    def submit_phone_code(self, state: FlowState, flow_id: str, payload: Mapping[str, Any]) -> StepResult:
        parsed = VerifyCodeForm.parse(payload)
        if not parsed.ok:
            return StepResult(state=state, errors=parsed.errors)

        outcome = self.one_time_codes.verify(verification_target(flow_id), parsed.value.code)
        if outcome is not VerifyOutcome.OK:
            return StepResult(state=state, errors={"code": [CODE_ERRORS[outcome]]}, outcome=outcome)

        return StepResult(
            state=state.update(PHONE, {"verified": True}),
            next_step=WizardStep.SET_PIN,
            outcome=outcome,
        )

    # === STEP 3: SET PIN ===

    def submit_pin(self, state: FlowState, payload: Mapping[str, Any]) -> StepResult:
        """Record a provisional PIN; only its bcrypt digest is kept."""
        parsed = PinForm.parse(payload)
        if not parsed.ok:
            return StepResult(state=state, errors=parsed.errors)

        digest = hash_password(parsed.value.pin, self.bcrypt_rounds)
        return StepResult(
            state=state.update(PIN_TEMP, {"digest": digest}),
            next_step=WizardStep.SET_PIN_CONFIRM,
        )

    # === STEP 4: CONFIRM PIN (account creation) ===

    def confirm_pin(self, state: FlowState, payload: Mapping[str, Any]) -> StepResult:
        """
        Match the re-entered PIN and create the account.

        The account's credential is the provisional PIN digest itself.
        """
        if state.user_id:
            return StepResult(state=state, next_step=WizardStep.CONFIRM_EMAIL)

        parsed = PinForm.parse(payload)
        if not parsed.ok:
            return StepResult(state=state, errors=parsed.errors)

        digest = state.section(PIN_TEMP).get("digest")
        if not verify_password(parsed.value.pin, digest):
            return StepResult(state=state, errors={"base": ["Codes do not match"]})

        profile = state.section(PROFILE)
        invite = None
        if state.invite_token:
            try:
                invite = self.invite_gate.validate(state.invite_token)
            except InviteNotFound:
                return self._restart(state.without(INVITE), {"invite_token": ["is no longer valid"]})

        account = NewAccount(
            email=profile["email"],
            password_hash=digest,
            phone=state.section(PHONE).get("number") or profile.get("phone"),
            first_name=profile.get("first_name"),
            last_name=profile.get("last_name"),
            birthdate=datetime.strptime(profile["birthdate"], BIRTHDATE_FORMAT).date(),
            locale=self.default_locale,
            marketing_opt_in=bool(profile.get("marketing")),
            phone_verified=True,
        )
        try:
            account_id = create_account(
                self.accounts,
                self.invite_gate,
                account,
                invite=invite,
                fallback_role=None if invite else Role.STUDENT,
            )
        except ValidationFailed as exc:
            return self._restart(state, exc.errors)
        except InviteNotFound:
            return self._restart(state.without(INVITE), {"invite_token": ["is no longer valid"]})

        send_confirmation(self.mailer, account.email, account_id)
        return StepResult(
            state=state.without(PIN_TEMP).update(USER, {"user_id": str(account_id)}),
            next_step=WizardStep.CONFIRM_EMAIL,
        )

    # === STEP 5: CONFIRM EMAIL ===

    def complete(self, state: FlowState) -> Completion:
        """
        Resolve the created account and clear the flow.

        Idempotent: without a recorded user id the state is returned as is
        and no account is reported.
        """
        user_id = state.user_id
        if not user_id:
            return Completion(account=None, state=state)

        account = self.accounts.get_account(UUID(user_id))
        if account is None:
            logger.warning("Flow points at missing account %s", user_id)
            return Completion(account=None, state=state)
        return Completion(account=account, state=FlowState())

    def _restart(self, state: FlowState, errors: FieldErrors) -> StepResult:
        return StepResult(state=state, errors=errors, redirect_to=WizardStep.PROFILE)
