"""
Client Messaging

Conversation between a client and the practice: send, page, mark read.
Sending a message also clears the sender's typing indicator.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.models.database import (
    AuditAction,
    AuditLog,
    Client,
    ClientMessage,
    utcnow,
)
from .typing import TypingIndicatorStore

logger = logging.getLogger(__name__)

SENDER_TYPES = ("client", "provider")
MAX_PAGE_SIZE = 100


def message_to_dict(message: ClientMessage) -> dict[str, Any]:
    """Serialize a message row."""
    return {
        "id": str(message.id),
        "client_id": str(message.client_id),
        "subject": message.subject,
        "message": message.message,
        "message_type": message.message_type,
        "priority": message.priority,
        "is_read": message.is_read,
        "read_at": message.read_at.isoformat() if message.read_at else None,
        "sender_type": message.sender_type,
        "sender_id": message.sender_id,
        "sender_name": message.sender_name,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


class MessageService:
    """Messages between one practice and its clients."""

    def __init__(self, db: AsyncSession, typing_store: TypingIndicatorStore):
        self.db = db
        self.typing_store = typing_store

    async def _load_client(self, user_id: UUID, client_id: UUID) -> Client:
        result = await self.db.execute(
            select(Client).where(Client.id == client_id, Client.user_id == user_id)
        )
        client = result.scalar_one_or_none()
        if client is None:
            raise NotFoundError("Client not found", details={"client_id": str(client_id)})
        return client

    async def send_message(
        self,
        user_id: UUID,
        client_id: UUID,
        message: str,
        subject: Optional[str] = None,
        sender_type: str = "provider",
        sender_name: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Store a message and audit it.

        Args:
            user_id: Practice the conversation belongs to
            client_id: Client on the other side
            message: Message text (required, trimmed)
            subject: Subject line (defaults to "Message")
            sender_type: "client" or "provider"
            sender_name: Display name (defaults to the client's or "Provider")
            ip_address: Request IP for the audit row
            user_agent: Request user agent for the audit row

        Returns:
            The stored message as a dict

        Raises:
            ValidationError: If the text is blank or the sender type unknown
            NotFoundError: If the client does not belong to the practice
        """
        text_value = (message or "").strip()
        if not text_value:
            raise ValidationError("Message content is required", details={"field": "message"})
        if sender_type not in SENDER_TYPES:
            raise ValidationError(
                f"Invalid sender type: {sender_type}",
                details={"field": "sender_type", "allowed": list(SENDER_TYPES)},
            )

        client = await self._load_client(user_id, client_id)

        if sender_type == "client":
            sender_id = str(client.id)
            default_name = client.full_name or "Client"
        else:
            sender_id = str(user_id)
            default_name = "Provider"

        row = ClientMessage(
            client_id=client.id,
            subject=subject or "Message",
            message=text_value,
            message_type="chat",
            priority="normal",
            is_read=False,
            sender_type=sender_type,
            sender_id=sender_id,
            sender_name=sender_name or default_name,
            created_at=utcnow(),
        )
        self.db.add(row)
        await self.db.flush()

        self.db.add(AuditLog(
            actor_id=sender_id,
            actor_type="client" if sender_type == "client" else "user",
            action=AuditAction.SEND_MESSAGE,
            resource_type="client_message",
            resource_id=str(row.id),
            ip_address=ip_address,
            user_agent=user_agent,
        ))
        await self.db.commit()

        if sender_type == "client":
            await self.typing_store.clear(client.id)

        logger.info(f"Message {row.id} sent by {sender_type} for client {client.id}")
        return message_to_dict(row)

    async def get_conversation(
        self,
        user_id: UUID,
        client_id: UUID,
        limit: int = 50,
        offset: int = 0,
        since: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Page a conversation, oldest message first within the page.

        The page is taken from the newest end (``offset`` counts back from
        the latest message) and then reversed.
        """
        client = await self._load_client(user_id, client_id)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        query = select(ClientMessage).where(ClientMessage.client_id == client.id)
        if since is not None:
            query = query.where(ClientMessage.created_at > since)
        query = query.order_by(ClientMessage.created_at.desc()).limit(limit).offset(offset)

        result = await self.db.execute(query)
        messages = list(reversed(result.scalars().all()))

        stats_result = await self.db.execute(
            select(
                func.count(ClientMessage.id),
                func.count(ClientMessage.id).filter(
                    ClientMessage.is_read.is_(False),
                    ClientMessage.sender_type == "provider",
                ),
                func.max(ClientMessage.created_at),
            ).where(ClientMessage.client_id == client.id)
        )
        total, unread, last_at = stats_result.one()

        return {
            "messages": [message_to_dict(m) for m in messages],
            "conversation": {
                "client_id": str(client.id),
                "client_name": client.full_name,
                "client_email": client.email,
                "stats": {
                    "total_messages": total or 0,
                    "unread_count": unread or 0,
                    "last_message_at": last_at.isoformat() if last_at else None,
                },
            },
            "pagination": {"limit": limit, "offset": offset, "total": total or 0},
        }

    async def mark_read(
        self,
        user_id: UUID,
        client_id: UUID,
        message_ids: Optional[list[UUID]] = None,
        mark_all: bool = False,
    ) -> dict[str, Any]:
        """
        Mark messages read.

        ``mark_all`` marks every unread provider message; otherwise only the
        listed messages of this client are touched.

        Raises:
            ValidationError: If neither ids nor mark_all are given
        """
        if not mark_all and not message_ids:
            raise ValidationError(
                "messageIds array is required, or set markAll=true",
                details={"field": "message_ids"},
            )

        client = await self._load_client(user_id, client_id)

        stmt = update(ClientMessage).where(
            ClientMessage.client_id == client.id,
            ClientMessage.is_read.is_(False),
        )
        if mark_all:
            stmt = stmt.where(ClientMessage.sender_type == "provider")
        else:
            stmt = stmt.where(ClientMessage.id.in_(message_ids))

        result = await self.db.execute(
            stmt.values(is_read=True, read_at=utcnow()).returning(ClientMessage.id)
        )
        marked = [str(row_id) for row_id in result.scalars().all()]
        await self.db.commit()

        return {"marked_count": len(marked), "message_ids": marked}
