"""
API v1 registration flow - token-addressed wizard for mobile clients.

Same steps as the web wizard, but the flow is addressed by an explicit
`flow_id` instead of a session cookie and expires after a fixed lifetime.
Every request loads the flow, checks expiry and the step gate, runs the
wizard step and saves the returned state.
"""

import logging
from datetime import timedelta
from uuid import uuid4

from fastapi import APIRouter, Depends, status

from schoolgate.adapters.storage import Storage
from schoolgate.api.dependencies import (
    get_registration_wizard,
    get_session_issuer,
    get_storage,
)
from schoolgate.api.models import (
    ErrorsResponse,
    FlowCodeRequest,
    FlowCompletedResponse,
    FlowIdRequest,
    FlowPinRequest,
    FlowProfileRequest,
    FlowResponse,
    OkResponse,
)
from schoolgate.config.settings import Settings, get_settings
from schoolgate.domain.auth import SessionIssuer
from schoolgate.domain.exceptions import FlowExpired, FlowNotFound, ValidationFailed
from schoolgate.domain.flow_state import FlowState, WizardStep
from schoolgate.domain.models import LoginChannel
from schoolgate.domain.one_time_code import utcnow
from schoolgate.domain.wizard import RegistrationWizard, StepResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/register", tags=["v1"])

FLOW_ERRORS = {
    404: {"model": ErrorsResponse, "description": "Unknown flow"},
    410: {"model": ErrorsResponse, "description": "Flow expired"},
    422: {"model": ErrorsResponse, "description": "Validation error or step order"},
}


def load_flow(storage: Storage, flow_id: str, step: WizardStep) -> FlowState:
    """
    Load a flow and check it may run `step`.

    Raises:
        FlowNotFound: No flow stored under this id
        FlowExpired: The flow outlived its expiry
        ValidationFailed: The flow has not reached `step` yet
    """
    state = storage.flows.load(flow_id)
    if state is None:
        raise FlowNotFound("Registration flow not found")
    if state.is_expired(utcnow()):
        raise FlowExpired("Registration flow expired")
    if not state.can_access(step):
        raise ValidationFailed({"base": ["Step order is invalid"]})
    return state


def apply_step(storage: Storage, flow_id: str, result: StepResult) -> StepResult:
    """Persist the outcome of a step, raising its errors if it failed."""
    if not result.ok:
        # A restart carries a pruned state (e.g. without the stale invite)
        if result.redirect_to is not None:
            storage.flows.save(flow_id, result.state)
        raise ValidationFailed(result.errors)
    storage.flows.save(flow_id, result.state)
    return result


@router.get(
    "/flow",
    response_model=FlowResponse,
    summary="Start a registration flow",
)
def start_flow(
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> FlowResponse:
    now = utcnow()
    pruned = storage.flows.delete_expired(now)
    if pruned:
        logger.info("Pruned %d expired registration flows", pruned)
    flow_id = str(uuid4())
    state = FlowState(expires_at=now + timedelta(minutes=settings.api_flow_ttl_minutes))
    storage.flows.save(flow_id, state)
    logger.info("Registration flow %s started", flow_id)
    return FlowResponse(flow_id=flow_id, step=WizardStep.PROFILE.value, expires_at=state.expires_at)


@router.post(
    "/profile",
    response_model=FlowResponse,
    responses=FLOW_ERRORS,
    summary="Submit profile and send the SMS code",
)
def submit_profile(
    request_data: FlowProfileRequest,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
) -> FlowResponse:
    state = load_flow(storage, request_data.flow_id, WizardStep.PROFILE)
    payload = request_data.profile.model_dump(exclude_none=True)
    token = request_data.class_token or request_data.join_token
    if token:
        payload["invite_token"] = token
    result = apply_step(
        storage, request_data.flow_id, wizard.submit_profile(state, request_data.flow_id, payload)
    )
    return FlowResponse(
        flow_id=request_data.flow_id, step=result.next_step.value, expires_at=state.expires_at
    )


@router.post(
    "/verify_phone",
    response_model=FlowResponse,
    responses=FLOW_ERRORS,
    summary="Verify the SMS code",
)
def verify_phone(
    request_data: FlowCodeRequest,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
) -> FlowResponse:
    flow_id = request_data.flow_id
    state = load_flow(storage, flow_id, WizardStep.VERIFY_PHONE)
    payload = request_data.model_dump(exclude_none=True, exclude={"flow_id"})
    result = apply_step(storage, flow_id, wizard.submit_phone_code(state, flow_id, payload))
    return FlowResponse(flow_id=flow_id, step=result.next_step.value, expires_at=state.expires_at)


@router.post(
    "/resend_code",
    response_model=OkResponse,
    responses=FLOW_ERRORS,
    summary="Send a fresh SMS code",
)
def resend_code(
    request_data: FlowIdRequest,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
) -> OkResponse:
    state = load_flow(storage, request_data.flow_id, WizardStep.VERIFY_PHONE)
    wizard.resend_code(state, request_data.flow_id)
    return OkResponse()


@router.post(
    "/set_pin",
    response_model=FlowResponse,
    responses=FLOW_ERRORS,
    summary="Choose a 4-digit PIN",
)
def set_pin(
    request_data: FlowPinRequest,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
) -> FlowResponse:
    flow_id = request_data.flow_id
    state = load_flow(storage, flow_id, WizardStep.SET_PIN)
    payload = request_data.model_dump(exclude_none=True, exclude={"flow_id"})
    result = apply_step(storage, flow_id, wizard.submit_pin(state, payload))
    return FlowResponse(flow_id=flow_id, step=result.next_step.value, expires_at=state.expires_at)


@router.post(
    "/confirm_pin",
    response_model=FlowCompletedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=FLOW_ERRORS,
    summary="Confirm the PIN, create the account and log in",
)
def confirm_pin(
    request_data: FlowPinRequest,
    storage: Storage = Depends(get_storage),
    wizard: RegistrationWizard = Depends(get_registration_wizard),
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> FlowCompletedResponse:
    flow_id = request_data.flow_id
    state = load_flow(storage, flow_id, WizardStep.SET_PIN_CONFIRM)
    payload = request_data.model_dump(exclude_none=True, exclude={"flow_id"})
    result = apply_step(storage, flow_id, wizard.confirm_pin(state, payload))

    completion = wizard.complete(result.state)
    if completion.account is None:
        raise FlowNotFound("Registered account not found")

    session = issuer.start_session(completion.account, LoginChannel.API)
    storage.flows.delete(flow_id)
    logger.info("Registration flow %s completed", flow_id)
    return FlowCompletedResponse(
        access_token=session.access_token,
        user_id=completion.account.id,
        email=completion.account.email,
    )
