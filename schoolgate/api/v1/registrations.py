"""
API v1 invite registration and login routes.
"""

from fastapi import APIRouter, Depends, status

from schoolgate.api.dependencies import get_registration_finalizer, get_session_issuer
from schoolgate.api.models import (
    ErrorsResponse,
    RegistrationRequest,
    RegistrationResponse,
    SessionRequest,
    SessionResponse,
)
from schoolgate.domain.auth import SessionIssuer
from schoolgate.domain.models import LoginChannel
from schoolgate.domain.registration import RegistrationFinalizer

router = APIRouter(tags=["v1"])


@router.post(
    "/users/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorsResponse, "description": "Invite token not found or already used"},
        422: {"model": ErrorsResponse, "description": "Validation error"},
    },
    summary="Register with an invite",
    description="Create an account from a teacher or class invite. "
    "The account waits for approval and a confirmation email is sent.",
)
def create_registration(
    request_data: RegistrationRequest,
    finalizer: RegistrationFinalizer = Depends(get_registration_finalizer),
) -> RegistrationResponse:
    """
    Register a new account against an invite token.

    - **user**: email, password, optional confirmation, names and locale
    - **invite_token** / **class_token**: the invite to consume
    """
    token = request_data.invite_token or request_data.class_token
    result = finalizer.create(token, request_data.user.model_dump(exclude_none=True))
    return RegistrationResponse(user_id=result.user_id, status=result.status)


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorsResponse, "description": "Invalid login"}},
    summary="Log in",
    description="Log in with email and password, or with phone and PIN.",
)
def create_session(
    request_data: SessionRequest,
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> SessionResponse:
    session = issuer.authenticate(
        request_data.user.model_dump(exclude_none=True), channel=LoginChannel.API
    )
    account = session.account
    return SessionResponse(
        access_token=session.access_token,
        id=account.id,
        email=account.email,
        first_name=account.first_name,
        last_name=account.last_name,
        phone=account.phone,
        locale=account.locale,
    )
