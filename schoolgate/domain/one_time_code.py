"""
One-time code service - SMS phone verification.

Code lifecycle for one target (a wizard flow or an account):

    issue()  -> pending record {code, issued_at, attempts=0}
    verify() -> OK          pending code cleared, verified set
             -> INVALID     attempts + 1
             -> EXPIRED     TTL elapsed (checked before comparing codes)
             -> LOCKED      max attempts already used, re-issue required
             -> NO_REQUEST  nothing pending

Re-issuing overwrites the pending record and resets the attempt counter.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone

from .models import VerificationRecord
from .ports import SmsSender, VerificationRepository, VerifyOutcome

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OneTimeCodeService:
    """Issues and verifies 4-digit codes with expiry and attempt tracking."""

    repository: VerificationRepository
    sms_sender: SmsSender
    ttl: timedelta = timedelta(minutes=5)
    max_attempts: int = 5
    clock: Callable[[], datetime] = field(default=utcnow)

    def issue(self, target: str, phone: str) -> str:
        """
        Generate, store and dispatch a fresh code for a target.

        The code counts as issued once stored; SMS delivery failures are
        logged and do not propagate.

        Args:
            target: Verification target key
            phone: Destination phone number

        Returns:
            The 4-digit code
        """
        code = self._generate_code()
        self.repository.save_record(target, VerificationRecord(code=code, issued_at=self.clock()))

        try:
            self.sms_sender.send(phone, f"Your verification code: {code}")
        except Exception:
            logger.warning("SMS dispatch to %s failed, code stays valid", phone, exc_info=True)

        return code

    def verify(self, target: str, submitted_code: str) -> VerifyOutcome:
        """Check a submitted code against the pending record for a target."""
        record = self.repository.get_record(target)
        if record is None or not record.pending:
            return VerifyOutcome.NO_REQUEST

        if self.clock() - record.issued_at >= self.ttl:
            return VerifyOutcome.EXPIRED

        if record.attempts >= self.max_attempts:
            return VerifyOutcome.LOCKED

        if not secrets.compare_digest(record.code.encode(), submitted_code.encode()):
            self.repository.save_record(target, replace(record, attempts=record.attempts + 1))
            if record.attempts + 1 >= self.max_attempts:
                logger.info("Verification for %s locked after %d attempts", target, record.attempts + 1)
            return VerifyOutcome.INVALID

        self.repository.save_record(target, replace(record, code=None, verified=True))
        return VerifyOutcome.OK

    def is_verified(self, target: str) -> bool:
        record = self.repository.get_record(target)
        return record is not None and record.verified

    def _generate_code(self) -> str:
        """
        Generate a cryptographically secure 4-digit code.

        Returns a string to preserve leading zeros.
        """
        return "".join(secrets.choice("0123456789") for _ in range(4))
