"""
Route dependencies.

Every service a route needs is resolved through one of these functions so
tests can swap it with ``app.dependency_overrides``.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from practiceflow.core.accounts import AccountService
from practiceflow.core.billing import PaymentLinkService
from practiceflow.core.messaging import MessageService, TypingIndicatorStore, get_typing_store
from practiceflow.core.notes import NoteGenerator, get_note_generator
from practiceflow.core.notifications import (
    NotificationDispatcher,
    NotificationRepository,
    TemplateRenderer,
    get_notification_dispatcher,
    get_notification_repository,
    get_template_renderer,
)
from practiceflow.infra.database import get_db
from practiceflow.infra.notifications import EmailProvider, get_email_provider
from practiceflow.infra.payments import StripeGateway, get_payment_gateway


def get_gateway() -> StripeGateway:
    return get_payment_gateway()


def get_email() -> EmailProvider:
    return get_email_provider()


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()


def get_repository() -> NotificationRepository:
    return get_notification_repository()


def get_renderer() -> TemplateRenderer:
    return get_template_renderer()


def get_notes() -> NoteGenerator:
    return get_note_generator()


def get_typing() -> TypingIndicatorStore:
    return get_typing_store()


def get_account_service(
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    email_provider: EmailProvider = Depends(get_email),
) -> AccountService:
    return AccountService(db, gateway, email_provider)


def get_payment_link_service(
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> PaymentLinkService:
    return PaymentLinkService(db, gateway, dispatcher)


def get_message_service(
    db: AsyncSession = Depends(get_db),
    typing_store: TypingIndicatorStore = Depends(get_typing),
) -> MessageService:
    return MessageService(db, typing_store)
