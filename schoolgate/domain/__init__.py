"""
Domain layer - Pure business logic with zero framework imports.

This package contains the registration and authentication logic of the
school platform: one-time phone codes, login strategies and sessions, the
signup wizard, invite gating and invite-driven account creation. It defines
its own port interfaces for infrastructure abstraction.
"""

from .auth import AuthSession, AuthStrategyResolver, EmailStrategy, PhoneStrategy, SessionIssuer
from .exceptions import (
    AuthError,
    AuthFailure,
    EmailAlreadyTaken,
    FlowExpired,
    FlowNotFound,
    Forbidden,
    InvalidAccessToken,
    InviteNotFound,
    NotFound,
    PhoneAlreadyTaken,
    RegistrationError,
    ValidationFailed,
)
from .flow_state import FlowState, WizardStep
from .invites import InviteGate
from .one_time_code import OneTimeCodeService
from .ports import VerifyOutcome
from .registration import RegistrationFinalizer, RegistrationResult
from .wizard import RegistrationWizard, StepResult

__all__ = [
    "AuthError",
    "AuthFailure",
    "AuthSession",
    "AuthStrategyResolver",
    "EmailAlreadyTaken",
    "EmailStrategy",
    "FlowExpired",
    "FlowNotFound",
    "FlowState",
    "Forbidden",
    "InvalidAccessToken",
    "InviteGate",
    "InviteNotFound",
    "NotFound",
    "OneTimeCodeService",
    "PhoneAlreadyTaken",
    "PhoneStrategy",
    "RegistrationError",
    "RegistrationFinalizer",
    "RegistrationResult",
    "RegistrationWizard",
    "SessionIssuer",
    "StepResult",
    "ValidationFailed",
    "VerifyOutcome",
    "WizardStep",
]
