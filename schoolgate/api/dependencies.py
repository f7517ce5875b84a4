"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from datetime import timedelta

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from schoolgate.adapters.messaging.console import ConsoleMailer, ConsoleSmsSender
from schoolgate.adapters.storage import Storage
from schoolgate.adapters.tokens.pyjwt_signer import PyJWTTokenSigner
from schoolgate.config.settings import Settings, get_settings
from schoolgate.domain.auth import SessionIssuer
from schoolgate.domain.exceptions import Forbidden, InvalidAccessToken
from schoolgate.domain.invites import InviteGate
from schoolgate.domain.models import Account, Role
from schoolgate.domain.one_time_code import OneTimeCodeService
from schoolgate.domain.ports import Mailer, SmsSender
from schoolgate.domain.registration import RegistrationFinalizer
from schoolgate.domain.wizard import RegistrationWizard

# Module-level singletons - console adapters are stateless
_sms_sender = ConsoleSmsSender()
_mailer = ConsoleMailer()


def get_storage(request: Request) -> Storage:
    """
    Get repository adapters from app state.

    The storage is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.storage


def get_sms_sender() -> SmsSender:
    """Get console SMS sender (singleton)."""
    return _sms_sender


def get_mailer() -> Mailer:
    """Get console mailer (singleton)."""
    return _mailer


def get_one_time_code_service(
    storage: Storage = Depends(get_storage),
    sms_sender: SmsSender = Depends(get_sms_sender),
    settings: Settings = Depends(get_settings),
) -> OneTimeCodeService:
    return OneTimeCodeService(
        repository=storage.verifications,
        sms_sender=sms_sender,
        ttl=timedelta(seconds=settings.code_ttl_seconds),
        max_attempts=settings.code_max_attempts,
    )


def get_invite_gate(storage: Storage = Depends(get_storage)) -> InviteGate:
    return InviteGate(invites=storage.invites)


def get_session_issuer(
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> SessionIssuer:
    return SessionIssuer(
        accounts=storage.accounts,
        token_signer=PyJWTTokenSigner(settings.jwt_secret_key, settings.jwt_algorithm),
        events=storage.events,
        token_ttl=timedelta(hours=settings.access_token_ttl_hours),
    )


def get_registration_finalizer(
    storage: Storage = Depends(get_storage),
    invite_gate: InviteGate = Depends(get_invite_gate),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> RegistrationFinalizer:
    """
    Create the invite registration service with injected dependencies.
    """
    return RegistrationFinalizer(
        accounts=storage.accounts,
        invite_gate=invite_gate,
        mailer=mailer,
        bcrypt_rounds=settings.bcrypt_cost,
        default_locale=settings.default_locale,
    )


def get_registration_wizard(
    storage: Storage = Depends(get_storage),
    one_time_codes: OneTimeCodeService = Depends(get_one_time_code_service),
    invite_gate: InviteGate = Depends(get_invite_gate),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> RegistrationWizard:
    return RegistrationWizard(
        accounts=storage.accounts,
        one_time_codes=one_time_codes,
        invite_gate=invite_gate,
        mailer=mailer,
        bcrypt_rounds=settings.bcrypt_cost,
        default_locale=settings.default_locale,
    )


# Bearer security scheme for OpenAPI documentation
http_bearer = HTTPBearer(auto_error=False)


def get_current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> Account:
    """
    Resolve the account behind a Bearer access token.

    Missing, expired and invalid tokens, and tokens for vanished accounts,
    all end in 401.
    """
    if credentials is None:
        raise InvalidAccessToken("Missing access token")
    account = issuer.account_for_token(credentials.credentials)
    if account is None:
        raise InvalidAccessToken("Access token expired")
    return account


def get_current_student(
    account: Account = Depends(get_current_account),
    storage: Storage = Depends(get_storage),
) -> Account:
    """Resolve the Bearer account and require the student role (403 otherwise)."""
    if not storage.accounts.has_role(account.id, Role.STUDENT):
        raise Forbidden("Student access required")
    return account
