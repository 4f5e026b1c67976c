"""Tests for preference merging, log entries and the notification repository."""

from contextlib import asynccontextmanager
from datetime import time
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.core.notifications.channels import select_channels
from practiceflow.core.notifications.repository import NotificationRepository, merge_preferences
from practiceflow.core.notifications.types import ContactPreferences, NotificationLogEntry
from practiceflow.models.database import (
    AuditLog,
    ClientNotificationSettings,
    ContactMethod,
    DeliveryMethod,
    DeliveryStatus,
)


def fake_session_factory(session):
    @asynccontextmanager
    async def factory():
        yield session

    return factory


def execute_result(row):
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    return result


class TestMergePreferences:
    """Test partial updates and the quiet-hours invariant."""

    def test_string_boolean_rejected(self):
        with pytest.raises(ValidationError) as exc:
            merge_preferences(ContactPreferences(), {"email_notifications": "false"})

        assert exc.value.details == {"field": "email_notifications"}

    def test_null_boolean_rejected(self):
        with pytest.raises(ValidationError):
            merge_preferences(ContactPreferences(), {"sms_notifications": None})

    def test_disabling_email_stops_email_channel(self):
        prefs = merge_preferences(ContactPreferences(), {"email_notifications": False})

        decision = select_channels("appointment_reminder", prefs, has_email=True)

        assert prefs.email_notifications is False
        assert decision.send_email is False

    def test_quiet_hours_enabled_without_bounds_rejected(self):
        with pytest.raises(ValidationError) as exc:
            merge_preferences(ContactPreferences(), {"quiet_hours_enabled": True})

        assert exc.value.details["fields"] == ["quiet_hours_start", "quiet_hours_end"]

    def test_clearing_a_bound_while_enabled_rejected(self):
        current = ContactPreferences(
            quiet_hours_enabled=True, quiet_hours_start=time(22), quiet_hours_end=time(8)
        )

        with pytest.raises(ValidationError):
            merge_preferences(current, {"quiet_hours_end": None})

    def test_quiet_hours_with_bounds(self):
        prefs = merge_preferences(ContactPreferences(), {
            "quiet_hours_enabled": True,
            "quiet_hours_start": "22:00",
            "quiet_hours_end": "08:30:15",
        })

        assert prefs.quiet_hours_start == time(22, 0)
        assert prefs.quiet_hours_end == time(8, 30)

    def test_bad_time_rejected(self):
        with pytest.raises(ValidationError) as exc:
            merge_preferences(ContactPreferences(), {"quiet_hours_start": "25:00"})

        assert exc.value.details == {"field": "quiet_hours_start"}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError) as exc:
            merge_preferences(ContactPreferences(), {"push_notifications": True})

        assert exc.value.details == {"fields": ["push_notifications"]}

    def test_contact_method_and_timezone(self):
        prefs = merge_preferences(ContactPreferences(), {
            "preferred_contact_method": "sms",
            "timezone": "America/Chicago",
        })

        assert prefs.preferred_contact_method == ContactMethod.SMS
        assert prefs.timezone == "America/Chicago"

    def test_blank_timezone_rejected(self):
        with pytest.raises(ValidationError):
            merge_preferences(ContactPreferences(), {"timezone": ""})


class TestNotificationLogEntry:

    def test_skipped_entry_requires_reason(self):
        with pytest.raises(ValueError):
            NotificationLogEntry(
                client_id=uuid4(),
                notification_type="appointment_reminder",
                delivery_method=DeliveryMethod.NONE,
                status=DeliveryStatus.SKIPPED,
            )

    def test_skipped_entry_with_reason(self):
        entry = NotificationLogEntry(
            client_id=uuid4(),
            notification_type="appointment_reminder",
            delivery_method=DeliveryMethod.NONE,
            status=DeliveryStatus.SKIPPED,
            metadata={"reason": "quiet_hours"},
        )

        assert entry.metadata["reason"] == "quiet_hours"


class TestNotificationRepository:
    """Test the repository against a fake session."""

    @pytest.fixture
    def session(self):
        db = AsyncMock()
        db.add = MagicMock()
        return db

    @pytest.fixture
    def repository(self, session):
        return NotificationRepository(session_factory=fake_session_factory(session))

    def _entry(self):
        return NotificationLogEntry(
            client_id=uuid4(),
            notification_type="payment_receipt",
            delivery_method=DeliveryMethod.EMAIL,
            status=DeliveryStatus.SENT,
            recipient_email="jane@example.test",
        )

    @pytest.mark.asyncio
    async def test_log_returns_row_id(self, repository, session):
        log_id = uuid4()

        def assign_id(row):
            row.id = log_id

        session.add.side_effect = assign_id

        assert await repository.log(self._entry()) == log_id
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_log_failure_returns_none(self, repository, session):
        session.flush.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))

        assert await repository.log(self._entry()) is None

    @pytest.mark.asyncio
    async def test_get_preferences_without_row(self, repository, session):
        session.execute.return_value = execute_result(None)

        assert await repository.get_preferences(uuid4()) is None

    @pytest.mark.asyncio
    async def test_save_preferences_unknown_client(self, repository, session):
        session.get.return_value = None

        with pytest.raises(NotFoundError):
            await repository.save_preferences(uuid4(), {"email_notifications": False})

        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_preferences_invalid_update_writes_nothing(self, repository, session):
        session.get.return_value = MagicMock()
        session.execute.return_value = execute_result(None)

        with pytest.raises(ValidationError):
            await repository.save_preferences(uuid4(), {"quiet_hours_enabled": True})

        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_preferences_creates_row_and_audit(self, repository, session):
        client_id = uuid4()
        session.get.return_value = MagicMock()
        session.execute.return_value = execute_result(None)

        prefs = await repository.save_preferences(
            client_id, {"sms_notifications": True}, actor_id="practice-1"
        )

        assert prefs.sms_notifications is True
        added = [c.args[0] for c in session.add.call_args_list]
        settings_rows = [a for a in added if isinstance(a, ClientNotificationSettings)]
        audit_rows = [a for a in added if isinstance(a, AuditLog)]
        assert len(settings_rows) == 1
        assert settings_rows[0].client_id == client_id
        assert settings_rows[0].sms_notifications is True
        assert audit_rows[0].details == {"fields": ["sms_notifications"]}
