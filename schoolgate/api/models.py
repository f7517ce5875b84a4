"""
API request and response models.

Pydantic models for FastAPI endpoint parsing and OpenAPI schema generation.
Request fields are deliberately loose (optional strings): field rules live
in the domain forms so that invite checks run first and validation errors
come back in one `{errors: [...]}` shape.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class ErrorsResponse(BaseModel):
    """Standard error response model."""

    errors: list[str]


class OkResponse(BaseModel):
    ok: bool = True


# --- Invite registration ---


class RegistrationUser(BaseModel):
    email: str | None = None
    password: str | None = None
    password_confirmation: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    locale: str | None = None


class RegistrationRequest(BaseModel):
    """Request model for invite-driven signup."""

    user: RegistrationUser = Field(default_factory=RegistrationUser)
    invite_token: str | None = None
    class_token: str | None = None


class RegistrationResponse(BaseModel):
    """Response model for a created, not yet approved account."""

    user_id: UUID
    status: str


# --- Sessions ---


class SessionUser(BaseModel):
    email: str | None = None
    phone: str | None = None
    password: str | None = None
    pin: str | None = None


class SessionRequest(BaseModel):
    """Request model for API login (email+password or phone+PIN)."""

    user: SessionUser = Field(default_factory=SessionUser)


class SessionResponse(BaseModel):
    """Response model for a successful API login."""

    access_token: str
    id: UUID
    email: EmailStr
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    locale: str


class WebSignInUser(BaseModel):
    role: str | None = None
    email: str | None = None
    password: str | None = None


class WebSignInRequest(BaseModel):
    """Web login; students sign in with phone and PIN (sent as `password`)."""

    user: WebSignInUser = Field(default_factory=WebSignInUser)
    phone: str | None = None
    password: str | None = None


class WebSignInResponse(BaseModel):
    account_id: UUID


# --- Wizard step payloads ---


class ProfileRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    birthdate: str | None = Field(default=None, description="DD.MM.YYYY")
    marketing: bool | str | None = None
    invite_token: str | None = None


class CodeRequest(BaseModel):
    """A 4-digit code, whole or as four single digits."""

    code: str | None = None
    code1: str | None = None
    code2: str | None = None
    code3: str | None = None
    code4: str | None = None


class PinRequest(BaseModel):
    """A 4-digit PIN, whole or as four single digits."""

    pin: str | None = None
    pin1: str | None = None
    pin2: str | None = None
    pin3: str | None = None
    pin4: str | None = None


# --- API registration flow ---


class FlowResponse(BaseModel):
    flow_id: str
    step: str
    expires_at: datetime | None = None


class FlowProfileRequest(BaseModel):
    flow_id: str
    profile: ProfileRequest = Field(default_factory=ProfileRequest)
    class_token: str | None = None
    join_token: str | None = None


class FlowCodeRequest(CodeRequest):
    flow_id: str


class FlowPinRequest(PinRequest):
    flow_id: str


class FlowIdRequest(BaseModel):
    flow_id: str


class FlowCompletedResponse(BaseModel):
    access_token: str
    user_id: UUID
    email: EmailStr
