"""
Unit tests for RegistrationWizard step handlers.

Tests drive the wizard directly with FlowState values and in-memory
storage, without HTTP.
"""

from datetime import datetime

import bcrypt
import pytest

from schoolgate.adapters.storage import Storage
from schoolgate.domain.flow_state import INVITE, PHONE, PIN_TEMP, PROFILE, FlowState, WizardStep
from schoolgate.domain.invites import InviteGate
from schoolgate.domain.one_time_code import OneTimeCodeService
from schoolgate.domain.ports import VerifyOutcome
from schoolgate.domain.wizard import RegistrationWizard, verification_target
from tests.helpers import (
    TEST_ROUNDS,
    FakeClock,
    RecordingMailer,
    RecordingSmsSender,
    add_account,
    add_invite,
)

FLOW_ID = "flow-123"

PROFILE_DATA = {
    "first_name": "Ola",
    "last_name": "Kowalska",
    "email": "Ola@Example.com",
    "phone": "+48 600 100 200",
    "birthdate": "01.09.2012",
    "marketing": True,
}


@pytest.fixture
def wizard(
    storage: Storage,
    sms_sender: RecordingSmsSender,
    mailer: RecordingMailer,
    clock: FakeClock,
) -> RegistrationWizard:
    codes = OneTimeCodeService(repository=storage.verifications, sms_sender=sms_sender, clock=clock)
    return RegistrationWizard(
        accounts=storage.accounts,
        one_time_codes=codes,
        invite_gate=InviteGate(invites=storage.invites, clock=clock),
        mailer=mailer,
        bcrypt_rounds=TEST_ROUNDS,
        clock=clock,
    )


def run_until_pin_confirmation(
    wizard: RegistrationWizard, sms_sender: RecordingSmsSender, profile: dict = PROFILE_DATA
) -> FlowState:
    state = wizard.submit_profile(FlowState(), FLOW_ID, profile).state
    state = wizard.submit_phone_code(state, FLOW_ID, {"code": sms_sender.last_code}).state
    return wizard.submit_pin(state, {"pin": "2468"}).state


class TestSubmitProfile:
    """Tests for step 1."""

    def test_valid_profile_moves_to_verify_phone(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender
    ) -> None:
        result = wizard.submit_profile(FlowState(), FLOW_ID, PROFILE_DATA)

        assert result.ok
        assert result.next_step == WizardStep.VERIFY_PHONE
        assert result.state.section(PROFILE)["email"] == "ola@example.com"
        assert result.state.section(PHONE) == {"number": "+48600100200", "verified": False}
        assert sms_sender.messages[0][0] == "+48600100200"

    def test_invalid_profile_keeps_state_and_echoes_safe_fields(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender
    ) -> None:
        state = FlowState()
        result = wizard.submit_profile(state, FLOW_ID, {**PROFILE_DATA, "phone": "abc", "pin": "1234"})

        assert not result.ok
        assert result.state is state
        assert result.errors == {"phone": ["is not valid"]}
        assert result.form["email"] == "Ola@Example.com"
        assert "pin" not in result.form
        assert sms_sender.messages == []

    def test_taken_email(self, wizard: RegistrationWizard, storage: Storage) -> None:
        add_account(storage, email="ola@example.com")

        result = wizard.submit_profile(FlowState(), FLOW_ID, PROFILE_DATA)

        assert result.errors == {"email": ["has already been taken"]}

    def test_taken_phone(
        self, wizard: RegistrationWizard, storage: Storage, sms_sender: RecordingSmsSender
    ) -> None:
        add_account(storage, email="mama@example.com", phone="+48600100200")

        result = wizard.submit_profile(FlowState(), FLOW_ID, PROFILE_DATA)

        assert result.errors == {"phone": ["has already been taken"]}
        assert sms_sender.messages == []

    def test_invalid_invite_token(self, wizard: RegistrationWizard) -> None:
        result = wizard.submit_profile(FlowState(), FLOW_ID, {**PROFILE_DATA, "invite_token": "nope"})
        assert result.errors == {"invite_token": ["is not valid"]}

    def test_valid_invite_is_stored(self, wizard: RegistrationWizard, storage: Storage) -> None:
        invite = add_invite(storage)

        result = wizard.submit_profile(FlowState(), FLOW_ID, {**PROFILE_DATA, "invite_token": invite.token})

        assert result.state.invite_token == invite.token

    def test_resubmission_resets_later_steps(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender
    ) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)

        result = wizard.submit_profile(state, FLOW_ID, {**PROFILE_DATA, "first_name": "Ela"})

        assert result.state.section(PROFILE)["first_name"] == "Ela"
        assert not result.state.phone_verified
        assert not result.state.pin_created


class TestVerifyPhone:
    """Tests for step 2."""

    def test_correct_code(self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender) -> None:
        state = wizard.submit_profile(FlowState(), FLOW_ID, PROFILE_DATA).state

        result = wizard.submit_phone_code(state, FLOW_ID, {"code": sms_sender.last_code})

        assert result.next_step == WizardStep.SET_PIN
        assert result.outcome == VerifyOutcome.OK
        assert result.state.phone_verified

    def test_wrong_code(self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender) -> None:
        state = wizard.submit_profile(FlowState(), FLOW_ID, PROFILE_DATA).state
        wrong = "0000" if sms_sender.last_code != "0000" else "1111"

        result = wizard.submit_phone_code(state, FLOW_ID, {"code": wrong})

        assert result.errors == {"code": ["is incorrect"]}
        assert result.outcome == VerifyOutcome.INVALID
        assert not result.state.phone_verified

    def test_expired_code(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender, clock: FakeClock
    ) -> None:
        state = wizard.submit_profile(FlowState(), FLOW_ID, PROFILE_DATA).state
        clock.advance(minutes=6)

        result = wizard.submit_phone_code(state, FLOW_ID, {"code": sms_sender.last_code})

        assert result.outcome == VerifyOutcome.EXPIRED

    def test_resend_replaces_code(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender, storage: Storage
    ) -> None:
        state = wizard.submit_profile(FlowState(), FLOW_ID, PROFILE_DATA).state

        code = wizard.resend_code(state, FLOW_ID)

        assert storage.verifications.get_record(verification_target(FLOW_ID)).code == code
        assert len(sms_sender.messages) == 2


class TestPin:
    """Tests for steps 3 and 4."""

    def test_pin_digest_stored(self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)

        digest = state.section(PIN_TEMP)["digest"]
        assert digest != "2468"
        assert bcrypt.checkpw(b"2468", digest.encode())

    def test_invalid_pin(self, wizard: RegistrationWizard) -> None:
        result = wizard.submit_pin(FlowState(), {"pin": "12"})
        assert result.errors == {"pin": ["must be 4 digits"]}

    def test_mismatched_confirmation(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender, storage: Storage
    ) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)

        result = wizard.confirm_pin(state, {"pin": "1357"})

        assert result.errors == {"base": ["Codes do not match"]}
        assert result.redirect_to is None
        assert storage.accounts.find_by_email("ola@example.com") is None

    def test_matching_confirmation_creates_account(
        self,
        wizard: RegistrationWizard,
        sms_sender: RecordingSmsSender,
        storage: Storage,
        mailer: RecordingMailer,
    ) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)

        result = wizard.confirm_pin(state, {"pin1": "2", "pin2": "4", "pin3": "6", "pin4": "8"})

        assert result.next_step == WizardStep.CONFIRM_EMAIL
        assert not result.state.pin_created
        account = storage.accounts.find_by_email("ola@example.com")
        assert str(account.id) == result.state.user_id
        assert account.phone == "+48600100200"
        assert account.phone_verified
        assert account.marketing_opt_in
        assert account.birthdate == datetime(2012, 9, 1).date()
        assert bcrypt.checkpw(b"2468", account.password_hash.encode())
        assert storage.accounts.role_assignments(account.id) == {("student", None): "approved"}
        assert mailer.sent == [("ola@example.com", account.id)]

    def test_confirmation_with_student_invite(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender, storage: Storage
    ) -> None:
        invite = add_invite(storage, kind="student")
        state = run_until_pin_confirmation(
            wizard, sms_sender, {**PROFILE_DATA, "invite_token": invite.token}
        )

        result = wizard.confirm_pin(state, {"pin": "2468"})

        account_id = storage.accounts.find_by_email("ola@example.com").id
        assert result.ok
        assert storage.accounts.class_enrollments(account_id) == {invite.school_class_id: "pending"}
        assert storage.invites.get_invite(invite.token).consumed

    def test_invite_consumed_meanwhile_restarts(
        self,
        wizard: RegistrationWizard,
        sms_sender: RecordingSmsSender,
        storage: Storage,
        clock: FakeClock,
    ) -> None:
        invite = add_invite(storage, kind="student")
        state = run_until_pin_confirmation(
            wizard, sms_sender, {**PROFILE_DATA, "invite_token": invite.token}
        )
        with storage.accounts.unit_of_work() as unit_of_work:
            unit_of_work.consume_invite(invite.token, clock.now)

        result = wizard.confirm_pin(state, {"pin": "2468"})

        assert result.redirect_to == WizardStep.PROFILE
        assert result.errors == {"invite_token": ["is no longer valid"]}
        assert INVITE not in result.state.data
        assert storage.accounts.find_by_email("ola@example.com") is None

    def test_email_taken_meanwhile_restarts(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender, storage: Storage
    ) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)
        add_account(storage, email="ola@example.com")

        result = wizard.confirm_pin(state, {"pin": "2468"})

        assert result.redirect_to == WizardStep.PROFILE
        assert result.errors == {"email": ["has already been taken"]}

    def test_phone_taken_meanwhile_restarts(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender, storage: Storage
    ) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)
        add_account(storage, email="mama@example.com", phone="+48600100200")

        result = wizard.confirm_pin(state, {"pin": "2468"})

        assert result.redirect_to == WizardStep.PROFILE
        assert result.errors == {"phone": ["has already been taken"]}
        assert storage.accounts.find_by_email("ola@example.com") is None

    def test_confirm_is_idempotent_once_user_exists(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender, mailer: RecordingMailer
    ) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)
        state = wizard.confirm_pin(state, {"pin": "2468"}).state

        again = wizard.confirm_pin(state, {"pin": "0000"})

        assert again.next_step == WizardStep.CONFIRM_EMAIL
        assert len(mailer.sent) == 1


class TestComplete:
    """Tests for step 5."""

    def test_complete_returns_account_and_clears_flow(
        self, wizard: RegistrationWizard, sms_sender: RecordingSmsSender
    ) -> None:
        state = run_until_pin_confirmation(wizard, sms_sender)
        state = wizard.confirm_pin(state, {"pin": "2468"}).state

        completion = wizard.complete(state)

        assert completion.account.email == "ola@example.com"
        assert completion.state == FlowState()

    def test_complete_without_user_is_neutral(self, wizard: RegistrationWizard) -> None:
        state = FlowState().update(PROFILE, {"email": "x@example.com"})

        completion = wizard.complete(state)

        assert completion.account is None
        assert completion.state is state
