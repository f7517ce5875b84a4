"""
Registration wizard flow state - explicit value object.

The wizard never reads ambient session data. Every step handler receives a
FlowState and returns a new one; a FlowStateStore adapter persists it under
a flow id (the web session id or an API flow id).

Layout: one flat mapping per section, keyed by section name:

    profile   -> normalized profile fields
    phone     -> {"number": ..., "verified": bool}
    pin_temp  -> {"digest": bcrypt digest of the provisional PIN}
    user      -> {"user_id": ...}
    invite    -> {"token": ...}

There is no schema versioning; flows are short-lived.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

PROFILE = "profile"
PHONE = "phone"
PIN_TEMP = "pin_temp"
USER = "user"
INVITE = "invite"


class WizardStep(str, Enum):
    """Wizard steps in their strict linear order."""

    PROFILE = "profile"
    VERIFY_PHONE = "verify_phone"
    SET_PIN = "set_pin"
    SET_PIN_CONFIRM = "set_pin_confirm"
    CONFIRM_EMAIL = "confirm_email"


@dataclass(frozen=True)
class FlowState:
    """Immutable snapshot of one registration flow."""

    data: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    expires_at: datetime | None = None

    def section(self, name: str) -> dict[str, Any]:
        return dict(self.data.get(name) or {})

    def update(self, name: str, attrs: Mapping[str, Any]) -> "FlowState":
        """Return a copy with `attrs` merged into section `name`."""
        data = {key: dict(value) for key, value in self.data.items()}
        data.setdefault(name, {}).update(attrs)
        return FlowState(data=data, expires_at=self.expires_at)

    def without(self, *names: str) -> "FlowState":
        data = {key: dict(value) for key, value in self.data.items() if key not in names}
        return FlowState(data=data, expires_at=self.expires_at)

    # --- Progress tracking ---

    @property
    def profile_completed(self) -> bool:
        return bool(self.data.get(PROFILE))

    @property
    def phone_verified(self) -> bool:
        return self.section(PHONE).get("verified") is True

    @property
    def pin_created(self) -> bool:
        return bool(self.section(PIN_TEMP).get("digest"))

    @property
    def user_id(self) -> str | None:
        return self.section(USER).get("user_id")

    @property
    def invite_token(self) -> str | None:
        return self.section(INVITE).get("token")

    def can_access(self, step: WizardStep) -> bool:
        rule = STEP_RULES.get(step)
        return rule(self) if rule else False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": {key: dict(value) for key, value in self.data.items()},
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FlowState":
        expires_at = payload.get("expires_at")
        return cls(
            data={key: dict(value) for key, value in (payload.get("steps") or {}).items()},
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )


# confirm_email stays reachable so a revisit after completion renders a
# neutral page instead of bouncing to the profile step.
STEP_RULES: dict[WizardStep, Callable[[FlowState], bool]] = {
    WizardStep.PROFILE: lambda flow: True,
    WizardStep.VERIFY_PHONE: lambda flow: flow.profile_completed,
    WizardStep.SET_PIN: lambda flow: flow.profile_completed and flow.phone_verified,
    WizardStep.SET_PIN_CONFIRM: lambda flow: (
        flow.profile_completed and flow.phone_verified and flow.pin_created
    ),
    WizardStep.CONFIRM_EMAIL: lambda flow: True,
}
