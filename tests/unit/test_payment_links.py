"""Tests for invoice payment links."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from practiceflow.core.billing.payment_links import PaymentLinkService, to_cents
from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.core.notifications.types import DispatchResult, NotificationType
from practiceflow.infra.payments import PaymentGatewayError, PaymentLink


class TestToCents:

    @pytest.mark.parametrize("amount, cents", [
        (150, 15000),
        ("99.99", 9999),
        (Decimal("10.005"), 1001),
        (0.1, 10),
    ])
    def test_conversion(self, amount, cents):
        assert to_cents(amount) == cents


class TestPaymentLinkService:
    """Test link creation, storage and client notification."""

    @pytest.fixture
    def user_id(self):
        return uuid4()

    @pytest.fixture
    def client(self):
        return SimpleNamespace(
            id=uuid4(),
            full_name="Jane Doe",
            email="jane@example.test",
            phone="+15550100",
            stripe_customer_id=None,
        )

    @pytest.fixture
    def invoice(self, client):
        return SimpleNamespace(
            id=uuid4(),
            client_id=client.id,
            invoice_number="INV-1001",
            due_date=date(2025, 4, 1),
            total_amount=Decimal("150.00"),
            payment_status="unpaid",
            stripe_payment_link=None,
            stripe_payment_link_id=None,
            stripe_payment_link_created_at=None,
        )

    @pytest.fixture
    def db(self, invoice, client):
        session = AsyncMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = invoice
        session.execute = AsyncMock(return_value=result)
        session.get = AsyncMock(return_value=client)
        session.add = MagicMock()
        return session

    @pytest.fixture
    def gateway(self):
        gateway = AsyncMock()
        gateway.create_customer = AsyncMock(return_value="cus_123")
        gateway.create_payment_link = AsyncMock(
            return_value=PaymentLink(id="plink_1", url="https://buy.stripe.test/plink_1")
        )
        return gateway

    @pytest.fixture
    def dispatcher(self):
        dispatcher = AsyncMock()
        dispatcher.send_template = AsyncMock(return_value=DispatchResult(success=True))
        return dispatcher

    @pytest.fixture
    def service(self, db, gateway, dispatcher):
        return PaymentLinkService(db, gateway, dispatcher)

    @pytest.mark.asyncio
    async def test_creates_stores_and_sends(self, service, db, gateway, dispatcher,
                                            user_id, invoice, client):
        result = await service.create_payment_link(user_id, invoice.id, "80", "Session 3/14")

        assert result.payment_link == "https://buy.stripe.test/plink_1"
        assert result.amount == Decimal("80")
        assert invoice.stripe_payment_link == "https://buy.stripe.test/plink_1"
        assert invoice.stripe_payment_link_id == "plink_1"
        assert invoice.stripe_payment_link_created_at is not None
        db.commit.assert_awaited_once()

        assert gateway.create_payment_link.await_args.kwargs["amount_cents"] == 8000
        assert client.stripe_customer_id == "cus_123"

        args = dispatcher.send_template.await_args.args
        assert args[0] == "payment_request"
        assert args[1]["payment_link"] == "https://buy.stripe.test/plink_1"
        assert args[1]["invoice"]["due_date"] == date(2025, 4, 1)
        assert args[3] == NotificationType.INVOICE_REMINDER

    @pytest.mark.asyncio
    async def test_existing_customer_reused(self, service, gateway, user_id, invoice, client):
        client.stripe_customer_id = "cus_existing"

        await service.create_payment_link(user_id, invoice.id, 80, "Session")

        gateway.create_customer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notification_failure_still_returns_link(self, service, dispatcher,
                                                           user_id, invoice):
        dispatcher.send_template.return_value = DispatchResult(
            success=False, message="All delivery attempts failed"
        )

        result = await service.create_payment_link(user_id, invoice.id, 80, "Session")

        assert result.payment_link_id == "plink_1"
        assert result.to_dict()["notification"]["success"] is False

    @pytest.mark.parametrize("amount", [0, -5, "abc", "NaN"])
    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self, service, gateway, user_id, amount):
        with pytest.raises(ValidationError):
            await service.create_payment_link(user_id, uuid4(), amount, "Session")
        gateway.create_payment_link.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, service, db, user_id):
        db.execute.return_value.scalar_one_or_none.return_value = None

        with pytest.raises(NotFoundError):
            await service.create_payment_link(user_id, uuid4(), 80, "Session")

    @pytest.mark.asyncio
    async def test_gateway_failure_stores_nothing(self, service, db, gateway, dispatcher,
                                                  user_id, invoice):
        gateway.create_payment_link.side_effect = PaymentGatewayError("Payment provider error")

        with pytest.raises(PaymentGatewayError):
            await service.create_payment_link(user_id, invoice.id, 80, "Session")

        assert invoice.stripe_payment_link is None
        db.commit.assert_not_awaited()
        dispatcher.send_template.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_payment_status(self, service, user_id, invoice):
        invoice.stripe_payment_link = "https://buy.stripe.test/x"

        status = await service.get_payment_status(user_id, invoice.id)

        assert status["invoice_number"] == "INV-1001"
        assert status["total_amount"] == "150.00"
        assert status["payment_link"] == "https://buy.stripe.test/x"
        assert status["payment_link_created_at"] is None
