"""
API v1 package.

Contains versioned API routes for invite registration, login,
the token-addressed registration flow and account phone verification.
"""

from fastapi import APIRouter

from schoolgate.api.v1.account import router as account_router
from schoolgate.api.v1.register_flow import router as register_flow_router
from schoolgate.api.v1.registrations import router as registrations_router

router = APIRouter()
router.include_router(registrations_router)
router.include_router(register_flow_router)
router.include_router(account_router)

__all__ = ["router"]
