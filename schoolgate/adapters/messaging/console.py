"""
Console messaging adapters - Implement the SmsSender and Mailer protocols.

These adapters log outgoing messages instead of delivering them, for
development and demo environments.
"""

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


class ConsoleSmsSender:
    """
    Implements SmsSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    The message is logged at INFO level to be visible in container logs.
    """

    def send(self, to: str, body: str) -> None:
        """
        Log an SMS instead of sending it.

        Args:
            to: Destination phone number
            body: Message text
        """
        logger.info("[SMS] To: %s Body: %s", to, body)


class ConsoleMailer:
    """Implements Mailer protocol via console logging."""

    def send_confirmation_instructions(self, email: str, account_id: UUID) -> None:
        """Log the confirmation email for a new account."""
        logger.info("[CONFIRMATION] Email: %s Account: %s", email, account_id)
