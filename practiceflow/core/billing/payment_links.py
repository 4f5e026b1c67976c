"""
Invoice Payment Links

Creates a Stripe payment link for an invoice, stores it on the invoice and
announces it to the client through the notification dispatcher.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from practiceflow.config import settings
from practiceflow.core.errors import NotFoundError, ValidationError
from practiceflow.core.notifications import (
    ClientContact,
    DispatchResult,
    NotificationDispatcher,
    NotificationType,
    RelatedEntity,
)
from practiceflow.infra.payments import StripeGateway
from practiceflow.models.database import AuditAction, AuditLog, Client, Invoice, utcnow

logger = logging.getLogger(__name__)


def to_cents(amount: Union[Decimal, float, int, str]) -> int:
    """Convert a dollar amount to whole cents (half-up)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class PaymentLinkResult:
    """Created link plus the outcome of notifying the client."""
    invoice_id: UUID
    payment_link: str
    payment_link_id: str
    amount: Decimal
    notification: DispatchResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_id": str(self.invoice_id),
            "payment_link": self.payment_link,
            "payment_link_id": self.payment_link_id,
            "amount": f"{self.amount:.2f}",
            "notification": self.notification.to_dict(),
        }


class PaymentLinkService:
    """Stripe payment links for client invoices."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: StripeGateway,
        dispatcher: NotificationDispatcher,
    ):
        self.db = db
        self.gateway = gateway
        self.dispatcher = dispatcher

    async def _load_invoice(self, user_id: UUID, invoice_id: UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice).where(Invoice.id == invoice_id, Invoice.user_id == user_id)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError("Invoice not found", details={"invoice_id": str(invoice_id)})
        return invoice

    async def create_payment_link(
        self,
        user_id: UUID,
        invoice_id: UUID,
        amount: Union[Decimal, float, str],
        description: str,
        due_date: Optional[date] = None,
    ) -> PaymentLinkResult:
        """
        Create, store and send a payment link.

        Args:
            user_id: Practice owning the invoice
            invoice_id: Invoice to collect
            amount: Amount in dollars (must be positive)
            description: Line item description shown at checkout
            due_date: Optional due date shown to the client

        Returns:
            PaymentLinkResult

        Raises:
            ValidationError: If the amount is not positive
            NotFoundError: If the invoice or its client does not exist
            PaymentGatewayError: If Stripe fails
        """
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            value = Decimal(0)
        if not value.is_finite() or value <= 0:
            raise ValidationError("Amount must be a positive number", details={"field": "amount"})

        invoice = await self._load_invoice(user_id, invoice_id)
        client = await self.db.get(Client, invoice.client_id)
        if client is None:
            raise NotFoundError("Client not found", details={"client_id": str(invoice.client_id)})

        if not client.stripe_customer_id:
            client.stripe_customer_id = await self.gateway.create_customer(
                email=client.email,
                name=client.full_name,
                phone=client.phone,
                metadata={"client_id": str(client.id), "source": settings.platform_name},
            )
            logger.info(f"Stripe customer {client.stripe_customer_id} stored for client {client.id}")

        link = await self.gateway.create_payment_link(
            amount_cents=to_cents(value),
            product_name=description,
            product_description=f"Invoice #{invoice.invoice_number}",
            metadata={
                "invoice_id": str(invoice.id),
                "client_id": str(client.id),
                "client_name": client.full_name,
            },
            success_url=f"{settings.portal_url}#payment-success",
        )

        invoice.stripe_payment_link = link.url
        invoice.stripe_payment_link_id = link.id
        invoice.stripe_payment_link_created_at = utcnow()
        self.db.add(AuditLog(
            actor_id=str(user_id),
            actor_type="user",
            action=AuditAction.CREATE_PAYMENT_LINK,
            resource_type="invoice",
            resource_id=str(invoice.id),
            details={"amount": f"{value:.2f}", "payment_link_id": link.id},
        ))
        # Link is stored before the client is told about it
        await self.db.commit()

        notification = await self.dispatcher.send_template(
            "payment_request",
            {
                "invoice": {
                    "invoice_number": invoice.invoice_number,
                    "client_name": client.full_name,
                    "total_amount": value,
                    "due_date": due_date or invoice.due_date,
                },
                "description": description,
                "payment_link": link.url,
            },
            client.id,
            NotificationType.INVOICE_REMINDER,
            ClientContact(
                client_id=client.id,
                name=client.full_name,
                email=client.email,
                phone=client.phone,
                user_id=user_id,
            ),
            related_entity=RelatedEntity("invoice", str(invoice.id)),
        )
        if not notification.success:
            logger.warning(
                f"Payment link {link.id} created but client notification failed: {notification.message}"
            )

        return PaymentLinkResult(
            invoice_id=invoice.id,
            payment_link=link.url,
            payment_link_id=link.id,
            amount=value,
            notification=notification,
        )

    async def get_payment_status(self, user_id: UUID, invoice_id: UUID) -> dict[str, Any]:
        """Current payment state and link of an invoice."""
        invoice = await self._load_invoice(user_id, invoice_id)
        created = invoice.stripe_payment_link_created_at
        return {
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "payment_status": invoice.payment_status,
            "total_amount": f"{Decimal(invoice.total_amount):.2f}",
            "payment_link": invoice.stripe_payment_link,
            "payment_link_created_at": created.isoformat() if created else None,
        }
