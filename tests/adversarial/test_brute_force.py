"""
Adversarial tests for one-time code guessing.

A 4-digit code has 10000 values; five attempts per issued code keeps a
blind guess at 0.05%. Once locked, even the correct code is refused until
a new one is issued.
"""

import pytest
from fastapi.testclient import TestClient

from schoolgate.adapters.storage import Storage
from schoolgate.domain.one_time_code import OneTimeCodeService
from schoolgate.domain.ports import VerifyOutcome
from tests.helpers import FakeClock, RecordingSmsSender

pytestmark = pytest.mark.adversarial

TARGET = "flow:attacked"


def wrong_codes(correct: str, count: int) -> list[str]:
    return [code for code in (f"{n:04d}" for n in range(10000)) if code != correct][:count]


@pytest.fixture
def codes(storage: Storage, sms_sender: RecordingSmsSender, clock: FakeClock) -> OneTimeCodeService:
    return OneTimeCodeService(repository=storage.verifications, sms_sender=sms_sender, clock=clock)


class TestCodeLockout:
    """Guessing stops after the attempt limit."""

    def test_correct_code_refused_after_lockout(self, codes: OneTimeCodeService) -> None:
        correct = codes.issue(TARGET, "+48600100200")

        outcomes = [codes.verify(TARGET, guess) for guess in wrong_codes(correct, 5)]

        assert outcomes == [VerifyOutcome.INVALID] * 5
        assert codes.verify(TARGET, correct) == VerifyOutcome.LOCKED
        assert not codes.is_verified(TARGET)

    def test_reissue_resets_attempts(self, codes: OneTimeCodeService) -> None:
        correct = codes.issue(TARGET, "+48600100200")
        for guess in wrong_codes(correct, 5):
            codes.verify(TARGET, guess)

        fresh = codes.issue(TARGET, "+48600100200")

        assert codes.verify(TARGET, fresh) == VerifyOutcome.OK

    def test_verified_code_cannot_be_replayed(self, codes: OneTimeCodeService) -> None:
        correct = codes.issue(TARGET, "+48600100200")
        codes.verify(TARGET, correct)

        assert codes.verify(TARGET, correct) == VerifyOutcome.NO_REQUEST


class TestWizardLockout:
    """The web wizard surfaces the lockout instead of accepting the code."""

    def test_locked_wizard_step(self, client: TestClient, sms_sender: RecordingSmsSender) -> None:
        client.post(
            "/register/profile",
            json={
                "first_name": "Ola",
                "last_name": "Kowalska",
                "email": "ola@example.com",
                "phone": "+48600100200",
                "birthdate": "01.09.2012",
            },
        )
        correct = sms_sender.last_code
        for guess in wrong_codes(correct, 5):
            client.post("/register/verify-phone", json={"code": guess})

        response = client.post("/register/verify-phone", json={"code": correct})

        assert response.status_code == 422
        assert response.json()["errors"] == {
            "code": ["was blocked after too many attempts, request a new one"]
        }
        assert client.get("/register/set-pin").status_code == 303
