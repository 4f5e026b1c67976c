"""
Billing Endpoints

Feature access decisions, Professional addon selection and invoice
payment links.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from practiceflow.api.dependencies import get_payment_link_service
from practiceflow.api.middleware.auth import (
    PracticeContext,
    invalidate_cached_practice,
    require_practice,
)
from practiceflow.core.billing import (
    PaymentLinkService,
    check_feature_access,
    parse_addon,
    parse_feature,
    parse_plan,
    select_addon,
    upgrade_options,
)
from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.infra.database import get_db
from practiceflow.models.database import AuditAction, AuditLog, SubscriptionStatus, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["Billing"])


class AddonRequest(BaseModel):
    """Professional addon choice."""

    addon: str = Field(..., examples=["ai_notes"])


class PaymentLinkRequest(BaseModel):
    """Payment link for an invoice."""

    invoice_id: UUID
    amount: Decimal
    description: str = Field(..., min_length=1, max_length=255)
    due_date: Optional[date] = None


@router.get("/features/{feature}", summary="Check access to a feature")
async def feature_access(
    feature: str,
    practice: PracticeContext = Depends(require_practice),
) -> dict:
    """Access decision plus the ways to unlock the feature when denied."""
    parsed = parse_feature(feature)
    plan = parse_plan(practice.plan)
    addon = parse_addon(practice.addon)

    decision = check_feature_access(plan, addon, parsed, SubscriptionStatus(practice.status))
    return {
        "feature": parsed.value,
        **decision.to_dict(),
        "upgrade_options": [o.to_dict() for o in upgrade_options(plan, addon, parsed)],
    }


@router.post("/addon", summary="Select or change the Professional addon")
async def choose_addon(
    body: AddonRequest,
    practice: PracticeContext = Depends(require_practice),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Apply an addon choice.

    Returns 400 outside the Professional plan and 409 when the addon was
    already changed this billing cycle.
    """
    new_addon = parse_addon(body.addon)
    if new_addon is None:
        raise ValidationError("Addon is required", details={"field": "addon"})

    user = await db.get(User, practice.id)
    if user is None:
        raise NotFoundError("Practice not found")

    selection = select_addon(
        parse_plan(user.subscription_plan),
        parse_addon(user.selected_addon),
        bool(user.addon_changed_this_cycle),
        new_addon,
    )

    if selection.changed:
        previous = user.selected_addon
        user.selected_addon = selection.addon.value
        user.addon_changed_this_cycle = selection.changed_this_cycle
        db.add(AuditLog(
            actor_id=str(user.id),
            actor_type="user",
            action=AuditAction.SELECT_ADDON,
            resource_type="user",
            resource_id=str(user.id),
            details={"from": previous, "to": selection.addon.value},
        ))
        await db.commit()
        await invalidate_cached_practice(practice.api_key_hash)
        logger.info(f"Practice {user.id} addon {previous} -> {selection.addon.value}")

    return {
        "success": True,
        "addon": selection.addon.value,
        "changed": selection.changed,
        "addon_changed_this_cycle": selection.changed_this_cycle,
    }


@router.post(
    "/payment-links",
    status_code=status.HTTP_201_CREATED,
    summary="Create and send an invoice payment link",
)
async def create_payment_link(
    body: PaymentLinkRequest,
    practice: PracticeContext = Depends(require_practice),
    service: PaymentLinkService = Depends(get_payment_link_service),
) -> dict:
    result = await service.create_payment_link(
        user_id=practice.id,
        invoice_id=body.invoice_id,
        amount=body.amount,
        description=body.description,
        due_date=body.due_date,
    )
    return {"success": True, "data": result.to_dict()}


@router.get("/invoices/{invoice_id}/payment-status", summary="Invoice payment status")
async def payment_status(
    invoice_id: UUID,
    practice: PracticeContext = Depends(require_practice),
    service: PaymentLinkService = Depends(get_payment_link_service),
) -> dict:
    return {"success": True, "data": await service.get_payment_status(practice.id, invoice_id)}
