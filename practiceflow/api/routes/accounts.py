"""
Account Endpoints

Public signup for practices and client-portal registration. Neither
requires an API key.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from practiceflow.api.dependencies import get_account_service
from practiceflow.core.accounts import AccountService, PracticeSignup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Accounts"])


class SignupRequest(BaseModel):
    """Practice signup request. Required fields are checked by the service."""

    plan: Optional[str] = Field(default=None, examples=["professional"])
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    practice_name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    addon: Optional[str] = Field(default=None, examples=["ai_notes"])


class PortalRegisterRequest(BaseModel):
    """Client portal registration request."""

    client_id: Optional[UUID] = None
    email: Optional[str] = None
    password: Optional[str] = None


@router.post(
    "/accounts",
    status_code=status.HTTP_201_CREATED,
    summary="Create a practice account",
)
async def create_account(
    body: SignupRequest,
    service: AccountService = Depends(get_account_service),
) -> dict:
    """
    Create a practice account with a Stripe trial subscription.

    The API key is returned once and is never shown again.
    """
    return await service.create_practice_account(PracticeSignup(**body.model_dump()))


@router.post(
    "/portal/register",
    status_code=status.HTTP_201_CREATED,
    summary="Register a client portal account",
)
async def register_portal(
    body: PortalRegisterRequest,
    request: Request,
    service: AccountService = Depends(get_account_service),
) -> dict:
    """Create a portal login for an existing client; sends a verification email."""
    return await service.register_client_portal(
        client_id=body.client_id,
        email=body.email,
        password=body.password,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
