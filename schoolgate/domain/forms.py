"""
Step payload forms - typed value objects with an explicit parse contract.

Each form exposes `parse(data) -> FormResult`: either a normalized value
or field-level errors, never both. Uniqueness checks that need storage are
layered on by the calling service.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from email_validator import EmailNotValidError, validate_email

from .exceptions import FieldErrors

T = TypeVar("T")

PHONE_PATTERN = re.compile(r"^\+?\d{9,15}$")
FOUR_DIGITS = re.compile(r"^\d{4}$")
LOCALE_PATTERN = re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")
BIRTHDATE_FORMAT = "%d.%m.%Y"

BLANK = "can't be blank"
INVALID = "is not valid"
TAKEN = "has already been taken"

PASSWORD_MIN_LENGTH = 6
# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_BYTES = 72

_TRUTHY = {"1", "true", "on", "yes"}


@dataclass(frozen=True)
class FormResult(Generic[T]):
    """Outcome of parsing a form: a value or field errors."""

    value: T | None = None
    errors: FieldErrors = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value).strip()


def _add(errors: FieldErrors, key: str, message: str) -> None:
    errors.setdefault(key, []).append(message)


def normalize_email(email: str) -> str:
    """Strip whitespace and lowercase."""
    return email.strip().lower()


def check_email(errors: FieldErrors, email: str) -> None:
    """
    Add a field error unless `email` is a syntactically valid address.

    Same rules as the `EmailStr` response fields, so every stored email can
    be serialized back. No DNS lookup.
    """
    if not email:
        _add(errors, "email", BLANK)
        return
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        _add(errors, "email", INVALID)


def normalize_phone(phone: str) -> str:
    """Drop spaces, dashes and parentheses."""
    return re.sub(r"[\s\-()]", "", phone)


def merge_digits(data: Mapping[str, Any], key: str) -> str:
    """
    Read a 4-digit value submitted whole (`key`) or split into
    `key1`..`key4` single-digit inputs.
    """
    whole = _text(data, key)
    if whole:
        return whole
    return "".join(_text(data, f"{key}{index}") for index in range(1, 5))


@dataclass(frozen=True)
class ProfileForm:
    """Wizard step 1: personal details."""

    first_name: str
    last_name: str
    email: str
    phone: str
    birthdate: date
    marketing: bool = False
    invite_token: str | None = None

    @classmethod
    def parse(cls, data: Mapping[str, Any], today: date | None = None) -> FormResult["ProfileForm"]:
        errors: FieldErrors = {}
        first_name = _text(data, "first_name")
        last_name = _text(data, "last_name")
        email = normalize_email(_text(data, "email"))
        phone = normalize_phone(_text(data, "phone"))
        raw_birthdate = _text(data, "birthdate")

        if not first_name:
            _add(errors, "first_name", BLANK)
        if not last_name:
            _add(errors, "last_name", BLANK)

        check_email(errors, email)

        if not phone:
            _add(errors, "phone", BLANK)
        elif not PHONE_PATTERN.match(phone):
            _add(errors, "phone", INVALID)

        birthdate = None
        if not raw_birthdate:
            _add(errors, "birthdate", BLANK)
        else:
            try:
                birthdate = datetime.strptime(raw_birthdate, BIRTHDATE_FORMAT).date()
            except ValueError:
                _add(errors, "birthdate", "must be a date in DD.MM.YYYY format")
            else:
                if birthdate > (today or date.today()):
                    _add(errors, "birthdate", "can't be in the future")

        if errors:
            return FormResult(errors=errors)

        marketing = data.get("marketing")
        if isinstance(marketing, str):
            marketing = marketing.strip().lower() in _TRUTHY

        return FormResult(
            value=cls(
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone,
                birthdate=birthdate,
                marketing=bool(marketing),
                invite_token=_text(data, "invite_token") or None,
            )
        )

    def to_flow(self) -> dict[str, Any]:
        """Section stored in flow state (JSON-safe)."""
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "birthdate": self.birthdate.strftime(BIRTHDATE_FORMAT),
            "marketing": self.marketing,
        }


@dataclass(frozen=True)
class VerifyCodeForm:
    """Wizard step 2: the SMS code."""

    code: str

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> FormResult["VerifyCodeForm"]:
        code = merge_digits(data, "code")
        if not FOUR_DIGITS.match(code):
            return FormResult(errors={"code": ["must be 4 digits"]})
        return FormResult(value=cls(code=code))


@dataclass(frozen=True)
class PinForm:
    """Wizard steps 3 and 4: the 4-digit PIN."""

    pin: str

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> FormResult["PinForm"]:
        pin = merge_digits(data, "pin")
        if not FOUR_DIGITS.match(pin):
            return FormResult(errors={"pin": ["must be 4 digits"]})
        return FormResult(value=cls(pin=pin))


@dataclass(frozen=True)
class SignupForm:
    """Invite-driven signup payload (email + password)."""

    email: str
    password: str
    first_name: str | None = None
    last_name: str | None = None
    locale: str = "pl"

    @classmethod
    def parse(cls, data: Mapping[str, Any], default_locale: str = "pl") -> FormResult["SignupForm"]:
        errors: FieldErrors = {}
        email = normalize_email(_text(data, "email"))
        password = "" if data.get("password") is None else str(data.get("password"))
        confirmation = data.get("password_confirmation")
        locale = _text(data, "locale") or default_locale

        check_email(errors, email)

        if not password:
            _add(errors, "password", BLANK)
        elif len(password) < PASSWORD_MIN_LENGTH:
            _add(errors, "password", f"is too short (minimum is {PASSWORD_MIN_LENGTH} characters)")
        elif len(password.encode()) > PASSWORD_MAX_BYTES:
            _add(errors, "password", f"is too long (maximum is {PASSWORD_MAX_BYTES} bytes)")

        # Confirmation is only checked when submitted
        if confirmation is not None and str(confirmation) != password:
            _add(errors, "password_confirmation", "doesn't match Password")

        if not LOCALE_PATTERN.match(locale):
            _add(errors, "locale", INVALID)

        if errors:
            return FormResult(errors=errors)

        return FormResult(
            value=cls(
                email=email,
                password=password,
                first_name=_text(data, "first_name") or None,
                last_name=_text(data, "last_name") or None,
                locale=locale,
            )
        )
