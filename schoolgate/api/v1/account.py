"""
API v1 account routes - phone verification for logged-in students.
"""

from fastapi import APIRouter, Depends

from schoolgate.adapters.storage import Storage
from schoolgate.api.dependencies import get_current_student, get_one_time_code_service, get_storage
from schoolgate.api.models import CodeRequest, ErrorsResponse, OkResponse
from schoolgate.domain.exceptions import ValidationFailed
from schoolgate.domain.forms import BLANK, VerifyCodeForm
from schoolgate.domain.models import Account
from schoolgate.domain.one_time_code import OneTimeCodeService
from schoolgate.domain.ports import VerifyOutcome
from schoolgate.domain.wizard import CODE_ERRORS

router = APIRouter(prefix="/account", tags=["v1"])


def account_target(account: Account) -> str:
    return f"account:{account.id}"


@router.post(
    "/phone-verification",
    response_model=OkResponse,
    responses={
        401: {"model": ErrorsResponse, "description": "Missing or invalid access token"},
        403: {"model": ErrorsResponse, "description": "Not a student account"},
        422: {"model": ErrorsResponse, "description": "Account has no phone"},
    },
    summary="Send a phone verification code",
)
def request_phone_verification(
    account: Account = Depends(get_current_student),
    codes: OneTimeCodeService = Depends(get_one_time_code_service),
) -> OkResponse:
    if not account.phone:
        raise ValidationFailed({"phone": [BLANK]})
    codes.issue(account_target(account), account.phone)
    return OkResponse()


@router.post(
    "/phone-verification/confirm",
    response_model=OkResponse,
    responses={
        401: {"model": ErrorsResponse, "description": "Missing or invalid access token"},
        403: {"model": ErrorsResponse, "description": "Not a student account"},
        422: {"model": ErrorsResponse, "description": "Wrong, expired or blocked code"},
    },
    summary="Confirm the phone verification code",
)
def confirm_phone_verification(
    request_data: CodeRequest,
    account: Account = Depends(get_current_student),
    codes: OneTimeCodeService = Depends(get_one_time_code_service),
    storage: Storage = Depends(get_storage),
) -> OkResponse:
    parsed = VerifyCodeForm.parse(request_data.model_dump(exclude_none=True))
    if not parsed.ok:
        raise ValidationFailed(parsed.errors)

    outcome = codes.verify(account_target(account), parsed.value.code)
    if outcome is not VerifyOutcome.OK:
        raise ValidationFailed({"code": [CODE_ERRORS[outcome]]})

    storage.accounts.mark_phone_verified(account.id)
    return OkResponse()
