"""Tests for client messaging."""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.core.messaging.service import MessageService
from practiceflow.models.database import AuditAction, AuditLog, ClientMessage


def execute_result(scalar=None, scalars=(), one=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = list(scalars)
    result.one.return_value = one
    return result


def message(created_at, sender_type="client"):
    return SimpleNamespace(
        id=uuid4(),
        client_id=uuid4(),
        subject="Message",
        message="hi",
        message_type="chat",
        priority="normal",
        is_read=False,
        read_at=None,
        sender_type=sender_type,
        sender_id="x",
        sender_name="Jane",
        created_at=created_at,
    )


class TestMessageService:
    """Test send, page and mark-read."""

    @pytest.fixture
    def client(self):
        return SimpleNamespace(id=uuid4(), full_name="Jane Doe", email="jane@example.test")

    @pytest.fixture
    def db(self, client):
        session = AsyncMock()
        session.execute = AsyncMock(return_value=execute_result(scalar=client))
        session.add = MagicMock()
        return session

    @pytest.fixture
    def typing_store(self):
        return AsyncMock()

    @pytest.fixture
    def service(self, db, typing_store):
        return MessageService(db, typing_store)

    @pytest.mark.asyncio
    async def test_client_message_clears_typing(self, service, db, typing_store, client):
        result = await service.send_message(uuid4(), client.id, "  Running late  ", sender_type="client")

        assert result["message"] == "Running late"
        assert result["sender_name"] == "Jane Doe"
        assert result["subject"] == "Message"
        typing_store.clear.assert_awaited_once_with(client.id)
        db.commit.assert_awaited_once()

        audit = [c.args[0] for c in db.add.call_args_list if isinstance(c.args[0], AuditLog)]
        assert audit[0].action == AuditAction.SEND_MESSAGE
        assert audit[0].actor_type == "client"

    @pytest.mark.asyncio
    async def test_provider_message(self, service, db, typing_store, client):
        user_id = uuid4()
        result = await service.send_message(user_id, client.id, "See you Tuesday")

        assert result["sender_type"] == "provider"
        assert result["sender_id"] == str(user_id)
        assert result["sender_name"] == "Provider"
        typing_store.clear.assert_not_awaited()
        stored = db.add.call_args_list[0].args[0]
        assert isinstance(stored, ClientMessage)
        assert stored.is_read is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   "])
    async def test_blank_message(self, service, db, text):
        with pytest.raises(ValidationError):
            await service.send_message(uuid4(), uuid4(), text)
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_sender_type(self, service):
        with pytest.raises(ValidationError):
            await service.send_message(uuid4(), uuid4(), "hi", sender_type="robot")

    @pytest.mark.asyncio
    async def test_foreign_client(self, service, db):
        db.execute.return_value = execute_result(scalar=None)

        with pytest.raises(NotFoundError):
            await service.send_message(uuid4(), uuid4(), "hi")

    @pytest.mark.asyncio
    async def test_conversation_oldest_first(self, service, db, client):
        newer = message(datetime(2025, 3, 14, 10, 5))
        older = message(datetime(2025, 3, 14, 10, 0))
        db.execute.side_effect = [
            execute_result(scalar=client),
            execute_result(scalars=[newer, older]),
            execute_result(one=(2, 1, newer.created_at)),
        ]

        result = await service.get_conversation(uuid4(), client.id, limit=500)

        assert [m["id"] for m in result["messages"]] == [str(older.id), str(newer.id)]
        assert result["conversation"]["stats"] == {
            "total_messages": 2,
            "unread_count": 1,
            "last_message_at": "2025-03-14T10:05:00",
        }
        assert result["pagination"]["limit"] == 100

    @pytest.mark.asyncio
    async def test_empty_conversation(self, service, db, client):
        db.execute.side_effect = [
            execute_result(scalar=client),
            execute_result(scalars=[]),
            execute_result(one=(0, 0, None)),
        ]

        result = await service.get_conversation(uuid4(), client.id)

        assert result["messages"] == []
        assert result["conversation"]["stats"]["last_message_at"] is None

    @pytest.mark.asyncio
    async def test_mark_read_requires_target(self, service):
        with pytest.raises(ValidationError) as exc:
            await service.mark_read(uuid4(), uuid4())
        assert exc.value.message == "messageIds array is required, or set markAll=true"

    @pytest.mark.asyncio
    async def test_mark_read(self, service, db, client):
        ids = [uuid4(), uuid4()]
        db.execute.side_effect = [
            execute_result(scalar=client),
            execute_result(scalars=ids),
        ]

        result = await service.mark_read(uuid4(), client.id, mark_all=True)

        assert result == {"marked_count": 2, "message_ids": [str(i) for i in ids]}
        db.commit.assert_awaited_once()
