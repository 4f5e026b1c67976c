"""
Notification Repository

Database access for contact preferences, practice branding, client contact
details and the append-only notification log.

Every method opens its own session, so a log write is always its own
atomic insert and concurrent channel branches never share a session.
"""

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import replace
from datetime import time
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.infra.database import get_db_context
from practiceflow.models.database import (
    AuditAction,
    AuditLog,
    Client,
    ClientNotificationSettings,
    ContactMethod,
    NotificationLog,
    PracticeSettings,
)

from .quiet_hours import to_minutes
from .types import ClientContact, ContactPreferences, NotificationLogEntry, PracticeBranding

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def default_preferences_row(client_id: UUID) -> ClientNotificationSettings:
    """Settings row holding the provisioning defaults for a new client account."""
    defaults = ContactPreferences(client_id=client_id)
    return ClientNotificationSettings(**{
        name: getattr(defaults, name) for name in ContactPreferences.field_names()
    })


_BOOLEAN_FIELDS = frozenset(
    name for name in ContactPreferences.field_names()
    if isinstance(getattr(ContactPreferences(), name), bool)
)


def _parse_time(value: Any, field_name: str) -> Optional[time]:
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    minutes = to_minutes(value)
    if minutes is None:
        raise ValidationError(
            f"{field_name} must be a time in HH:MM format",
            details={"field": field_name},
        )
    return time(minutes // 60, minutes % 60)


def merge_preferences(current: ContactPreferences, updates: dict[str, Any]) -> ContactPreferences:
    """
    Apply a partial update to a preference snapshot and validate the result.

    Raises:
        ValidationError: On unknown fields, wrongly typed values or a broken
            quiet-hours invariant
    """
    allowed = ContactPreferences.field_names() - {"client_id"}
    unknown = set(updates) - allowed
    if unknown:
        raise ValidationError(
            f"Unknown preference fields: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )

    changes = dict(updates)
    for name in ("quiet_hours_start", "quiet_hours_end"):
        if name in changes:
            changes[name] = _parse_time(changes[name], name)
    if "preferred_contact_method" in changes:
        try:
            changes["preferred_contact_method"] = ContactMethod(changes["preferred_contact_method"])
        except ValueError:
            raise ValidationError(
                "preferred_contact_method must be 'email' or 'sms'",
                details={"field": "preferred_contact_method"},
            ) from None

    for name, value in changes.items():
        if name in _BOOLEAN_FIELDS and not isinstance(value, bool):
            raise ValidationError(f"{name} must be true or false", details={"field": name})
    if "timezone" in changes and not (isinstance(changes["timezone"], str) and changes["timezone"]):
        raise ValidationError("timezone must be a non-empty string", details={"field": "timezone"})

    merged = replace(current, **changes)
    merged.validate()
    return merged


class NotificationRepository:
    """Data access for the notification engine."""

    def __init__(self, session_factory: SessionFactory = get_db_context):
        self._session = session_factory

    # === Preferences ===

    async def get_preferences(self, client_id: UUID) -> Optional[ContactPreferences]:
        """
        Load a client's contact preferences.

        Returns:
            Snapshot, or None if the client has no settings row or the
            lookup failed
        """
        try:
            async with self._session() as db:
                result = await db.execute(
                    select(ClientNotificationSettings)
                    .where(ClientNotificationSettings.client_id == client_id)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load notification settings for client {client_id}: {e}")
            return None

        if row is None:
            logger.info(f"No notification settings for client {client_id}, using defaults")
            return None
        return ContactPreferences.from_model(row)

    async def save_preferences(
        self,
        client_id: UUID,
        updates: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> ContactPreferences:
        """
        Create or update a client's contact preferences.

        The settings write and its audit row commit together.

        Raises:
            NotFoundError: If the client does not exist
            ValidationError: If the merged preferences are invalid
        """
        async with self._session() as db:
            client = await db.get(Client, client_id)
            if client is None:
                raise NotFoundError("Client not found", details={"client_id": str(client_id)})

            result = await db.execute(
                select(ClientNotificationSettings)
                .where(ClientNotificationSettings.client_id == client_id)
            )
            row = result.scalar_one_or_none()
            current = (
                ContactPreferences.from_model(row) if row is not None
                else ContactPreferences(client_id=client_id)
            )

            merged = merge_preferences(current, updates)

            if row is None:
                row = ClientNotificationSettings(client_id=client_id)
                db.add(row)
            for name in ContactPreferences.field_names() - {"client_id"}:
                setattr(row, name, getattr(merged, name))

            db.add(AuditLog(
                actor_id=actor_id,
                actor_type="user",
                action=AuditAction.UPDATE_PREFERENCES,
                resource_type="client_notification_settings",
                resource_id=str(client_id),
                details={"fields": sorted(updates)},
            ))

        logger.info(f"Notification settings saved for client {client_id}")
        return merged

    # === Branding / contact ===

    async def get_branding(self, user_id: Optional[UUID]) -> PracticeBranding:
        """Practice branding for ``user_id`` (empty branding when absent)."""
        if user_id is None:
            return PracticeBranding()
        try:
            async with self._session() as db:
                result = await db.execute(
                    select(PracticeSettings).where(PracticeSettings.user_id == user_id)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load practice settings for user {user_id}: {e}")
            return PracticeBranding()

        if row is None:
            return PracticeBranding()
        return PracticeBranding(
            practice_name=row.practice_name,
            practice_phone=row.practice_phone,
            practice_email=row.practice_email,
            practice_website=row.practice_website,
        )

    async def get_client_contact(
        self,
        client_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Optional[ClientContact]:
        """Contact details for a client, optionally scoped to one practice."""
        async with self._session() as db:
            query = select(Client).where(Client.id == client_id)
            if user_id is not None:
                query = query.where(Client.user_id == user_id)
            result = await db.execute(query)
            client = result.scalar_one_or_none()

        if client is None:
            return None
        return ClientContact(
            client_id=client.id,
            name=client.full_name,
            email=client.email,
            phone=client.phone,
            user_id=client.user_id,
        )

    # === Log ===

    async def log(self, entry: NotificationLogEntry) -> Optional[UUID]:
        """
        Append one entry to the notification log.

        Failures are logged and swallowed so one channel's log write can
        never fail the dispatch.

        Returns:
            The new row id, or None if the write failed
        """
        related = entry.related_entity
        row = NotificationLog(
            client_id=entry.client_id,
            notification_type=entry.notification_type,
            notification_category=entry.notification_category,
            subject=entry.subject,
            message=entry.message,
            delivery_method=entry.delivery_method,
            recipient_email=entry.recipient_email,
            recipient_phone=entry.recipient_phone,
            status=entry.status,
            sent_at=entry.sent_at,
            failed_at=entry.failed_at,
            related_entity_type=related.entity_type if related else None,
            related_entity_id=related.entity_id if related else None,
            details=entry.metadata or None,
        )
        try:
            async with self._session() as db:
                db.add(row)
                await db.flush()
                log_id = row.id
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                f"Failed to write notification log for client {entry.client_id} "
                f"({entry.delivery_method.value}/{entry.status.value}): {e}"
            )
            return None

        logger.debug(f"Notification logged: {log_id} ({entry.status.value})")
        return log_id

    async def list_logs(
        self,
        client_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Page through a client's notification log, newest first.

        Returns:
            (entries, total count)
        """
        async with self._session() as db:
            total = await db.scalar(
                select(func.count()).select_from(NotificationLog)
                .where(NotificationLog.client_id == client_id)
            )
            result = await db.execute(
                select(NotificationLog)
                .where(NotificationLog.client_id == client_id)
                .order_by(NotificationLog.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            rows = result.scalars().all()

        return [self._log_to_dict(row) for row in rows], int(total or 0)

    @staticmethod
    def _log_to_dict(row: NotificationLog) -> dict[str, Any]:
        def iso(value):
            return value.isoformat() if value else None

        return {
            "id": str(row.id),
            "client_id": str(row.client_id),
            "notification_type": row.notification_type,
            "notification_category": row.notification_category,
            "subject": row.subject,
            "delivery_method": row.delivery_method.value,
            "recipient_email": row.recipient_email,
            "recipient_phone": row.recipient_phone,
            "status": row.status.value,
            "sent_at": iso(row.sent_at),
            "delivered_at": iso(row.delivered_at),
            "opened_at": iso(row.opened_at),
            "clicked_at": iso(row.clicked_at),
            "failed_at": iso(row.failed_at),
            "related_entity_type": row.related_entity_type,
            "related_entity_id": row.related_entity_id,
            "metadata": row.details or {},
            "created_at": iso(row.created_at),
        }


_repository: Optional[NotificationRepository] = None


def get_notification_repository() -> NotificationRepository:
    """Get notification repository singleton."""
    global _repository
    if _repository is None:
        _repository = NotificationRepository()
    return _repository
