"""
Notification Endpoints

Contact preferences, dispatch of pre-rendered or templated notifications,
template preview and the per-client delivery log.
"""

import logging
from datetime import time
from html import escape
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, StrictBool

from practiceflow.api.dependencies import get_dispatcher, get_renderer, get_repository
from practiceflow.api.middleware.auth import PracticeContext, require_practice
from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.core.notifications import (
    ClientContact,
    ContactPreferences,
    NotificationDispatcher,
    NotificationRepository,
    NotificationType,
    RelatedEntity,
    RenderedMessage,
    TemplateRenderer,
)
from practiceflow.models.database import ContactMethod

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


class DispatchRequest(BaseModel):
    """Pre-rendered notification to gate and deliver."""

    client_id: UUID
    notification_type: NotificationType
    subject: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    html: Optional[str] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None


class PreferencesUpdate(BaseModel):
    """Partial contact-preference update; omitted fields keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    email_notifications: Optional[StrictBool] = None
    sms_notifications: Optional[StrictBool] = None

    email_appointment_reminders: Optional[StrictBool] = None
    email_appointment_confirmations: Optional[StrictBool] = None
    email_invoice_reminders: Optional[StrictBool] = None
    email_payment_receipts: Optional[StrictBool] = None
    email_document_updates: Optional[StrictBool] = None
    email_marketing: Optional[StrictBool] = None

    sms_appointment_reminders: Optional[StrictBool] = None
    sms_appointment_confirmations: Optional[StrictBool] = None
    sms_invoice_reminders: Optional[StrictBool] = None
    sms_payment_receipts: Optional[StrictBool] = None
    sms_document_updates: Optional[StrictBool] = None
    sms_marketing: Optional[StrictBool] = None

    preferred_contact_method: Optional[ContactMethod] = None

    quiet_hours_enabled: Optional[StrictBool] = None
    quiet_hours_start: Optional[time] = Field(None, examples=["22:00"])
    quiet_hours_end: Optional[time] = Field(None, examples=["08:00"])
    timezone: Optional[str] = Field(None, min_length=1, max_length=64, examples=["America/New_York"])


class TemplateRequest(BaseModel):
    """Template render (and optionally dispatch) request."""

    template: str = Field(..., min_length=1, examples=["appointment_reminder"])
    data: dict[str, Any] = Field(default_factory=dict)
    client_id: Optional[UUID] = None
    notification_type: Optional[NotificationType] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None


def _related(entity_type: Optional[str], entity_id: Optional[str]) -> Optional[RelatedEntity]:
    if entity_type and entity_id:
        return RelatedEntity(entity_type, entity_id)
    return None


async def _client_contact(
    repository: NotificationRepository,
    client_id: UUID,
    practice: PracticeContext,
) -> ClientContact:
    contact = await repository.get_client_contact(client_id, user_id=practice.id)
    if contact is None:
        raise NotFoundError("Client not found", details={"client_id": str(client_id)})
    return contact


# === Preferences ===

@router.get(
    "/clients/{client_id}/notification-preferences",
    summary="Get a client's contact preferences",
)
async def get_preferences(
    client_id: UUID,
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
) -> dict:
    """Stored preferences, or the provisioning defaults when none exist."""
    await _client_contact(repository, client_id, practice)
    prefs = await repository.get_preferences(client_id)
    is_default = prefs is None
    if prefs is None:
        prefs = ContactPreferences(client_id=client_id)
    return {"success": True, "data": prefs.to_dict(), "is_default": is_default}


@router.put(
    "/clients/{client_id}/notification-preferences",
    summary="Update a client's contact preferences",
)
async def update_preferences(
    client_id: UUID,
    body: PreferencesUpdate,
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
) -> dict:
    """Partial update; unknown fields, wrong types and half-configured quiet hours are rejected."""
    await _client_contact(repository, client_id, practice)
    updates = body.model_dump(exclude_unset=True)
    prefs = await repository.save_preferences(client_id, updates, actor_id=str(practice.id))
    return {"success": True, "data": prefs.to_dict(), "message": "Notification settings updated"}


# === Delivery ===

@router.post("/notifications/dispatch", summary="Dispatch a pre-rendered notification")
async def dispatch_notification(
    body: DispatchRequest,
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """
    Gate by quiet hours, pick channels and deliver.

    Delivery outcomes (including a quiet-hours skip) are reported in the
    body with status 200; they are not request errors.
    """
    contact = await _client_contact(repository, body.client_id, practice)
    rendered = RenderedMessage(
        subject=body.subject,
        body=body.body,
        html=body.html or f"<p>{escape(body.body)}</p>",
    )
    result = await dispatcher.dispatch(
        body.client_id,
        body.notification_type,
        rendered,
        contact,
        related_entity=_related(body.related_entity_type, body.related_entity_id),
    )
    return result.to_dict()


@router.post("/notifications/send-template", summary="Render a template and dispatch it")
async def send_template(
    body: TemplateRequest,
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    if body.client_id is None or body.notification_type is None:
        raise ValidationError(
            "client_id and notification_type are required",
            details={"required": ["client_id", "notification_type"]},
        )

    contact = await _client_contact(repository, body.client_id, practice)
    result = await dispatcher.send_template(
        body.template,
        body.data,
        body.client_id,
        body.notification_type,
        contact,
        related_entity=_related(body.related_entity_type, body.related_entity_id),
    )
    return result.to_dict()


@router.post("/notifications/preview", summary="Render a template without sending")
async def preview_template(
    body: TemplateRequest,
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
    renderer: TemplateRenderer = Depends(get_renderer),
) -> dict:
    branding = await repository.get_branding(practice.id)
    rendered = renderer.render(body.template, body.data, branding)
    if rendered.is_err:
        error = rendered.error
        if error.code == "template_not_found":
            raise NotFoundError(error.message, details={"available": renderer.names})
        raise ValidationError(error.message, details={"code": error.code})
    return {"success": True, "data": rendered.value.to_dict()}


# === Log ===

@router.get("/clients/{client_id}/notifications", summary="Client notification log")
async def list_notifications(
    client_id: UUID,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
) -> dict:
    await _client_contact(repository, client_id, practice)
    entries, total = await repository.list_logs(client_id, limit=limit, offset=offset)
    return {
        "success": True,
        "data": entries,
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }
