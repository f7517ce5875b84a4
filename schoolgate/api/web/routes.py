"""
Web routes - cookie-session registration wizard and web sign in.

The wizard flow is stored under the session id carried in the session
cookie. Nothing is stored until a step succeeds; every save pushes the
flow's expiry `web_flow_ttl_minutes` ahead, and an expired flow starts over.
GET handlers describe the current step as JSON; POST handlers run a
wizard step and answer 303 to the next step, or 422 with the step, the safe
form fields and the field errors. A step whose gate is not satisfied
redirects to the profile step.
"""

import logging
import secrets
from dataclasses import replace
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response

from schoolgate.adapters.storage import Storage
from schoolgate.api.dependencies import get_registration_wizard, get_session_issuer, get_storage
from schoolgate.api.models import (
    CodeRequest,
    ErrorsResponse,
    PinRequest,
    ProfileRequest,
    WebSignInRequest,
    WebSignInResponse,
)
from schoolgate.config.settings import Settings, get_settings
from schoolgate.domain.auth import AuthStrategyResolver, EmailStrategy, PhoneStrategy, SessionIssuer
from schoolgate.domain.exceptions import FieldErrors
from schoolgate.domain.flow_state import PHONE, PROFILE, FlowState, WizardStep
from schoolgate.domain.models import LoginChannel, Role
from schoolgate.domain.one_time_code import utcnow
from schoolgate.domain.wizard import SAFE_PROFILE_FIELDS, RegistrationWizard, StepResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["web"])

# Errors carried across a restart redirect, shown once on the profile page
FLASH = "flash"

STEP_PATHS = {
    WizardStep.PROFILE: "/register/profile",
    WizardStep.VERIFY_PHONE: "/register/verify-phone",
    WizardStep.SET_PIN: "/register/set-pin",
    WizardStep.SET_PIN_CONFIRM: "/register/set-pin/confirm",
    WizardStep.CONFIRM_EMAIL: "/register/confirm-email",
}


# === Session helpers ===


def open_flow(request: Request, storage: Storage, settings: Settings) -> tuple[str, FlowState]:
    """
    Load the flow for this session.

    A missing or expired flow yields an empty, unsaved state.
    """
    flow_id = request.cookies.get(settings.session_cookie_name) or secrets.token_urlsafe(32)
    state = storage.flows.load(flow_id)
    if state is None:
        return flow_id, FlowState()
    if state.is_expired(utcnow()):
        logger.info("Web flow %s expired", flow_id)
        storage.flows.delete(flow_id)
        return flow_id, FlowState()
    return flow_id, state


def save_flow(storage: Storage, flow_id: str, state: FlowState, settings: Settings) -> None:
    expires_at = utcnow() + timedelta(minutes=settings.web_flow_ttl_minutes)
    storage.flows.save(flow_id, replace(state, expires_at=expires_at))


def with_session(response: Response, flow_id: str, settings: Settings) -> Response:
    response.set_cookie(
        settings.session_cookie_name,
        flow_id,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return response


def redirect_to(step: WizardStep, flow_id: str, settings: Settings) -> Response:
    response = RedirectResponse(STEP_PATHS[step], status_code=status.HTTP_303_SEE_OTHER)
    return with_session(response, flow_id, settings)


def render(
    step: WizardStep,
    flow_id: str,
    settings: Settings,
    form: dict | None = None,
    errors: FieldErrors | None = None,
    status_code: int = status.HTTP_200_OK,
    **extra,
) -> Response:
    content = {"step": step.value, "form": form or {}, "errors": errors or {}, **extra}
    return with_session(JSONResponse(content, status_code=status_code), flow_id, settings)


def finish_step(
    step: WizardStep,
    flow_id: str,
    result: StepResult,
    storage: Storage,
    settings: Settings,
) -> Response:
    """Save and redirect on success; re-render or restart on failure."""
    if result.ok:
        save_flow(storage, flow_id, result.state, settings)
        return redirect_to(result.next_step, flow_id, settings)
    if result.redirect_to is not None:
        restarted = result.state.update(FLASH, {"errors": result.errors})
        save_flow(storage, flow_id, restarted, settings)
        return redirect_to(result.redirect_to, flow_id, settings)
    return render(
        step,
        flow_id,
        settings,
        form=result.form,
        errors=result.errors,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


# === STEP 1: PROFILE ===


@router.get("/register/profile")
def show_profile(
    request: Request,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    flash = state.section(FLASH)
    if flash:
        save_flow(storage, flow_id, state.without(FLASH), settings)
    profile = state.section(PROFILE)
    form = {key: profile[key] for key in SAFE_PROFILE_FIELDS if key in profile}
    return render(WizardStep.PROFILE, flow_id, settings, form=form, errors=flash.get("errors"))


@router.post("/register/profile", status_code=status.HTTP_303_SEE_OTHER)
def submit_profile(
    request_data: ProfileRequest,
    request: Request,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
    settings: Settings = Depends(get_settings),
) -> Response:
    pruned = storage.flows.delete_expired(utcnow())
    if pruned:
        logger.info("Pruned %d expired registration flows", pruned)
    flow_id, state = open_flow(request, storage, settings)
    result = wizard.submit_profile(state, flow_id, request_data.model_dump(exclude_none=True))
    return finish_step(WizardStep.PROFILE, flow_id, result, storage, settings)


# === STEP 2: VERIFY PHONE ===


@router.get("/register/verify-phone")
def show_verify_phone(
    request: Request,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    if not state.can_access(WizardStep.VERIFY_PHONE):
        return redirect_to(WizardStep.PROFILE, flow_id, settings)
    return render(
        WizardStep.VERIFY_PHONE, flow_id, settings, phone=state.section(PHONE).get("number")
    )


@router.post("/register/verify-phone", status_code=status.HTTP_303_SEE_OTHER)
def submit_verify_phone(
    request_data: CodeRequest,
    request: Request,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    if not state.can_access(WizardStep.VERIFY_PHONE):
        return redirect_to(WizardStep.PROFILE, flow_id, settings)
    result = wizard.submit_phone_code(state, flow_id, request_data.model_dump(exclude_none=True))
    return finish_step(WizardStep.VERIFY_PHONE, flow_id, result, storage, settings)


@router.post("/register/verify-phone/resend")
def resend_code(
    request: Request,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    if not state.can_access(WizardStep.VERIFY_PHONE):
        return redirect_to(WizardStep.PROFILE, flow_id, settings)
    wizard.resend_code(state, flow_id)
    return with_session(JSONResponse({"ok": True}), flow_id, settings)


# === STEP 3: SET PIN ===


@router.get("/register/set-pin")
def show_set_pin(
    request: Request,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    if not state.can_access(WizardStep.SET_PIN):
        return redirect_to(WizardStep.PROFILE, flow_id, settings)
    return render(WizardStep.SET_PIN, flow_id, settings)


@router.post("/register/set-pin", status_code=status.HTTP_303_SEE_OTHER)
def submit_set_pin(
    request_data: PinRequest,
    request: Request,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    if not state.can_access(WizardStep.SET_PIN):
        return redirect_to(WizardStep.PROFILE, flow_id, settings)
    result = wizard.submit_pin(state, request_data.model_dump(exclude_none=True))
    return finish_step(WizardStep.SET_PIN, flow_id, result, storage, settings)


# === STEP 4: CONFIRM PIN ===


@router.get("/register/set-pin/confirm")
def show_set_pin_confirm(
    request: Request,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    if not state.can_access(WizardStep.SET_PIN_CONFIRM):
        return redirect_to(WizardStep.PROFILE, flow_id, settings)
    return render(WizardStep.SET_PIN_CONFIRM, flow_id, settings)


@router.post("/register/set-pin/confirm", status_code=status.HTTP_303_SEE_OTHER)
def submit_set_pin_confirm(
    request_data: PinRequest,
    request: Request,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
    settings: Settings = Depends(get_settings),
) -> Response:
    flow_id, state = open_flow(request, storage, settings)
    if not state.can_access(WizardStep.SET_PIN_CONFIRM):
        return redirect_to(WizardStep.PROFILE, flow_id, settings)
    result = wizard.confirm_pin(state, request_data.model_dump(exclude_none=True))
    return finish_step(WizardStep.SET_PIN_CONFIRM, flow_id, result, storage, settings)


# === STEP 5: CONFIRM EMAIL ===


@router.get("/register/confirm-email")
def show_confirm_email(
    request: Request,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
    issuer: SessionIssuer = Depends(get_session_issuer),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Log the new account in and clear the flow.

    Without a created account (or on a revisit) the page is neutral.
    """
    flow_id, state = open_flow(request, storage, settings)
    completion = wizard.complete(state)
    if completion.account is None:
        return render(WizardStep.CONFIRM_EMAIL, flow_id, settings)

    session = issuer.start_session(completion.account, LoginChannel.WEB_STUDENT)
    storage.flows.delete(flow_id)
    response = render(
        WizardStep.CONFIRM_EMAIL,
        flow_id,
        settings,
        email=completion.account.email,
        account_id=str(completion.account.id),
    )
    set_access_cookie(response, session.access_token, settings)
    return response


# === SIGN IN ===


def set_access_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        settings.access_token_cookie_name,
        token,
        max_age=settings.access_token_ttl_hours * 3600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


@router.post(
    "/sign_in",
    response_model=WebSignInResponse,
    responses={422: {"model": ErrorsResponse, "description": "Invalid login"}},
    summary="Web sign in",
    description="Students sign in with phone and PIN; everyone else with email and password.",
)
def sign_in(
    request_data: WebSignInRequest,
    storage: Storage = Depends(get_storage),
    issuer: SessionIssuer = Depends(get_session_issuer),
    settings: Settings = Depends(get_settings),
) -> Response:
    user = request_data.user
    if user.role == Role.STUDENT.value:
        session = issuer.authenticate(
            {"phone": request_data.phone, "password": request_data.password},
            channel=LoginChannel.WEB_STUDENT,
            resolver=AuthStrategyResolver((PhoneStrategy(storage.accounts),)),
            required_role=Role.STUDENT,
        )
    else:
        session = issuer.authenticate(
            {"email": user.email, "password": user.password},
            channel=LoginChannel.WEB,
            resolver=AuthStrategyResolver((EmailStrategy(storage.accounts),)),
        )

    response = JSONResponse({"account_id": str(session.account.id)})
    set_access_cookie(response, session.access_token, settings)
    return response
