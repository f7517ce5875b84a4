"""
Authentication - credential strategies and session issuance.

Login parameters are resolved by an ordered list of strategies; the first
strategy whose discriminating field is present wins (email before phone).
The resolved account's credential is then checked with bcrypt and a signed,
time-bound access token is issued.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

from .exceptions import AuthError, AuthFailure, InvalidAccessToken
from .forms import normalize_email, normalize_phone
from .models import Account, Event, LoginChannel, Role
from .one_time_code import utcnow
from .passwords import verify_password
from .ports import AccountRepository, EventRecorder, TokenSigner

logger = logging.getLogger(__name__)


class AuthStrategy(Protocol):
    """Identity lookup keyed on one discriminating field."""

    def is_applicable(self, params: Mapping[str, Any]) -> bool: ...

    def resolve_candidate(self, params: Mapping[str, Any]) -> Account | None: ...

    def extract_credential(self, params: Mapping[str, Any]) -> str: ...


def _field(params: Mapping[str, Any], key: str) -> str:
    value = params.get(key)
    return "" if value is None else str(value).strip()


def _credential(params: Mapping[str, Any]) -> str:
    value = params.get("password")
    if value is None:
        value = params.get("pin")
    return "" if value is None else str(value)


@dataclass(frozen=True)
class EmailStrategy:
    """Email + password login."""

    accounts: AccountRepository

    def is_applicable(self, params: Mapping[str, Any]) -> bool:
        return bool(_field(params, "email"))

    def resolve_candidate(self, params: Mapping[str, Any]) -> Account | None:
        return self.accounts.find_by_email(normalize_email(_field(params, "email")))

    def extract_credential(self, params: Mapping[str, Any]) -> str:
        return _credential(params)


@dataclass(frozen=True)
class PhoneStrategy:
    """Phone + PIN login."""

    accounts: AccountRepository

    def is_applicable(self, params: Mapping[str, Any]) -> bool:
        return bool(_field(params, "phone"))

    def resolve_candidate(self, params: Mapping[str, Any]) -> Account | None:
        return self.accounts.find_by_phone(normalize_phone(_field(params, "phone")))

    def extract_credential(self, params: Mapping[str, Any]) -> str:
        return _credential(params)


@dataclass(frozen=True)
class AuthStrategyResolver:
    """First-match-wins dispatch over an ordered strategy list."""

    strategies: Sequence[AuthStrategy]

    @classmethod
    def default(cls, accounts: AccountRepository) -> "AuthStrategyResolver":
        return cls(strategies=(EmailStrategy(accounts), PhoneStrategy(accounts)))

    def resolve(self, params: Mapping[str, Any]) -> AuthStrategy | None:
        for strategy in self.strategies:
            if strategy.is_applicable(params):
                return strategy
        return None


@dataclass(frozen=True)
class AuthSession:
    """An authenticated account and its access token."""

    account: Account
    access_token: str


@dataclass
class SessionIssuer:
    """
    Verifies credentials and issues access tokens.

    Tokens carry only `account_id` and `exp`. There is no revocation list:
    validity is signature + expiry.
    """

    accounts: AccountRepository
    token_signer: TokenSigner
    events: EventRecorder
    token_ttl: timedelta = timedelta(hours=24)
    clock: Callable[[], datetime] = field(default=utcnow)

    def authenticate(
        self,
        params: Mapping[str, Any],
        channel: LoginChannel = LoginChannel.API,
        resolver: AuthStrategyResolver | None = None,
        required_role: Role | None = None,
    ) -> AuthSession:
        """
        Resolve an account from login params and check its credential.

        Args:
            params: Raw login fields (email or phone, password or pin)
            channel: Client the login comes from, recorded on the event
            resolver: Strategy list override (defaults to email, then phone)
            required_role: Only accounts holding this role may log in

        Returns:
            AuthSession with the account and a fresh access token

        Raises:
            AuthError: MISSING_FIELDS, ACCOUNT_NOT_FOUND or BAD_CREDENTIAL
        """
        strategy = (resolver or AuthStrategyResolver.default(self.accounts)).resolve(params)
        if strategy is None:
            raise AuthError(AuthFailure.MISSING_FIELDS)

        account = strategy.resolve_candidate(params)
        if account is not None and required_role is not None:
            if not self.accounts.has_role(account.id, required_role):
                account = None

        # bcrypt runs even without an account to keep timing uniform
        matched = verify_password(
            strategy.extract_credential(params),
            account.password_hash if account is not None else None,
        )
        if account is None:
            raise AuthError(AuthFailure.ACCOUNT_NOT_FOUND)
        if not matched:
            raise AuthError(AuthFailure.BAD_CREDENTIAL)

        return self.start_session(account, channel)

    def start_session(self, account: Account, channel: LoginChannel) -> AuthSession:
        """Issue a token for an already-trusted account and log the login."""
        now = self.clock()
        token = self.token_signer.encode(
            {"account_id": str(account.id), "exp": now + self.token_ttl}
        )
        self.events.record(
            Event(
                event_type="user_login",
                account_id=account.id,
                client=channel.value,
                occurred_at=now,
                data={"login_method": channel.value},
            )
        )
        logger.info("Account %s logged in via %s", account.id, channel.value)
        return AuthSession(account=account, access_token=token)

    def account_for_token(self, token: str) -> Account | None:
        """
        Resolve the account behind an access token.

        Returns None for an expired token or a vanished account. Any other
        invalid token raises InvalidAccessToken from the signer.
        """
        claims = self.token_signer.decode(token)
        if claims is None:
            return None
        try:
            account_id = UUID(str(claims["account_id"]))
        except (KeyError, ValueError) as exc:
            raise InvalidAccessToken("Token carries no valid account_id") from exc
        return self.accounts.get_account(account_id)
