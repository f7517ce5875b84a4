"""
Exception handlers - map domain exceptions to HTTP responses.

Every error body has the shape `{"errors": [...]}`.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from schoolgate.domain.exceptions import (
    AuthError,
    AuthFailure,
    FlowExpired,
    Forbidden,
    InvalidAccessToken,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

# Unknown account and wrong credential share one message to prevent enumeration
AUTH_MESSAGES = {
    AuthFailure.MISSING_FIELDS: "Missing login fields",
    AuthFailure.ACCOUNT_NOT_FOUND: "Invalid login credentials",
    AuthFailure.BAD_CREDENTIAL: "Invalid login credentials",
}


def _errors(status_code: int, messages: list[str]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errors": messages})


async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    return _errors(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.messages())


async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return _errors(status.HTTP_404_NOT_FOUND, [str(exc) or "Not found"])


async def flow_expired_handler(request: Request, exc: FlowExpired) -> JSONResponse:
    return _errors(status.HTTP_410_GONE, [str(exc) or "Registration flow expired"])


async def forbidden_handler(request: Request, exc: Forbidden) -> JSONResponse:
    return _errors(status.HTTP_403_FORBIDDEN, [str(exc) or "Forbidden"])


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.info("Login rejected: %s", exc.reason.value)
    return _errors(status.HTTP_422_UNPROCESSABLE_ENTITY, [AUTH_MESSAGES[exc.reason]])


async def invalid_token_handler(request: Request, exc: InvalidAccessToken) -> JSONResponse:
    return _errors(status.HTTP_401_UNAUTHORIZED, ["Invalid access token"])


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain exception handlers to an app."""
    app.add_exception_handler(ValidationFailed, validation_failed_handler)
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(FlowExpired, flow_expired_handler)
    app.add_exception_handler(Forbidden, forbidden_handler)
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(InvalidAccessToken, invalid_token_handler)
