"""
Messaging Endpoints

Practice-side conversation with a client plus the client typing indicator.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from practiceflow.api.dependencies import get_message_service, get_repository, get_typing
from practiceflow.api.middleware.auth import PracticeContext, require_practice
from practiceflow.core.errors import NotFoundError
from practiceflow.core.messaging import MessageService, TypingIndicatorStore
from practiceflow.core.notifications import NotificationRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/messaging", tags=["Messaging"])


class SendMessageRequest(BaseModel):
    """New message in a conversation."""

    message: str = Field(default="", max_length=10_000)
    subject: Optional[str] = Field(default=None, max_length=255)
    sender_type: str = Field(default="provider", examples=["provider", "client"])
    sender_name: Optional[str] = None


class TypingRequest(BaseModel):
    is_typing: bool = True


class MarkReadRequest(BaseModel):
    message_ids: list[UUID] = Field(default_factory=list)
    mark_all: bool = False


@router.get("/clients/{client_id}/messages", summary="Conversation with a client")
async def get_conversation(
    client_id: UUID,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    since: Optional[datetime] = Query(default=None),
    practice: PracticeContext = Depends(require_practice),
    service: MessageService = Depends(get_message_service),
) -> dict:
    data = await service.get_conversation(practice.id, client_id, limit=limit, offset=offset, since=since)
    return {"success": True, "data": data}


@router.post(
    "/clients/{client_id}/messages",
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    client_id: UUID,
    body: SendMessageRequest,
    request: Request,
    practice: PracticeContext = Depends(require_practice),
    service: MessageService = Depends(get_message_service),
) -> dict:
    data = await service.send_message(
        practice.id,
        client_id,
        body.message,
        subject=body.subject,
        sender_type=body.sender_type,
        sender_name=body.sender_name,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {"success": True, "data": data, "message": "Message sent successfully"}


@router.put("/clients/{client_id}/messages/read", summary="Mark messages read")
async def mark_read(
    client_id: UUID,
    body: MarkReadRequest,
    practice: PracticeContext = Depends(require_practice),
    service: MessageService = Depends(get_message_service),
) -> dict:
    data = await service.mark_read(
        practice.id,
        client_id,
        message_ids=body.message_ids,
        mark_all=body.mark_all,
    )
    return {"success": True, "data": data, "message": f"{data['marked_count']} messages marked as read"}


async def _check_client(
    repository: NotificationRepository,
    client_id: UUID,
    practice: PracticeContext,
) -> None:
    if await repository.get_client_contact(client_id, user_id=practice.id) is None:
        raise NotFoundError("Client not found", details={"client_id": str(client_id)})


@router.get("/clients/{client_id}/typing", summary="Is the client typing")
async def get_typing_status(
    client_id: UUID,
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
    store: TypingIndicatorStore = Depends(get_typing),
) -> dict:
    await _check_client(repository, client_id, practice)
    return {
        "success": True,
        "data": {"client_id": str(client_id), "is_typing": await store.is_typing(client_id)},
    }


@router.post("/clients/{client_id}/typing", summary="Update the typing flag")
async def set_typing_status(
    client_id: UUID,
    body: TypingRequest,
    practice: PracticeContext = Depends(require_practice),
    repository: NotificationRepository = Depends(get_repository),
    store: TypingIndicatorStore = Depends(get_typing),
) -> dict:
    """The flag expires on its own after the store TTL."""
    await _check_client(repository, client_id, practice)
    await store.set_typing(client_id, body.is_typing)
    return {
        "success": True,
        "data": {"is_typing": body.is_typing, "ttl_seconds": store.ttl},
        "message": "Typing status updated",
    }
