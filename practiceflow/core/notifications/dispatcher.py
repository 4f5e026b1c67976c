"""
Delivery Dispatcher

Runs one notification event through the full pipeline:

    preferences -> quiet-hours gate -> channel selection -> send -> log

Email and SMS branches run concurrently. Each branch bounds its provider
call by the provider timeout, converts any provider failure into a failed
result and writes its own log row, so one slow or failing channel never
blocks or fails the other. Nothing is retried within a dispatch.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

from practiceflow.config import settings
from practiceflow.infra.notifications import (
    EmailProvider,
    ProviderResult,
    SmsProvider,
    get_email_provider,
    get_sms_provider,
)
from practiceflow.models.database import DeliveryMethod, DeliveryStatus, utcnow

from .channels import select_channels
from .quiet_hours import is_outside_quiet_hours
from .repository import NotificationRepository, get_notification_repository
from .templates import TemplateRenderer, get_template_renderer
from .types import (
    Channel,
    ChannelResult,
    ClientContact,
    DispatchResult,
    NotificationLogEntry,
    NotificationType,
    RelatedEntity,
    RenderedMessage,
    SKIP_REASON_QUIET_HOURS,
)

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends notifications to clients according to their contact preferences.

    Usage:
        dispatcher = get_notification_dispatcher()
        result = await dispatcher.dispatch(
            client_id, NotificationType.APPOINTMENT_REMINDER, rendered, contact
        )
    """

    def __init__(
        self,
        repository: Optional[NotificationRepository] = None,
        email_provider: Optional[EmailProvider] = None,
        sms_provider: Optional[SmsProvider] = None,
        renderer: Optional[TemplateRenderer] = None,
        provider_timeout: Optional[float] = None,
    ):
        self.repository = repository or get_notification_repository()
        self.email_provider = email_provider or get_email_provider()
        self.sms_provider = sms_provider or get_sms_provider()
        self.renderer = renderer or get_template_renderer()
        self.provider_timeout = provider_timeout or settings.provider_timeout_seconds

    async def dispatch(
        self,
        client_id: UUID,
        notification_type: Union[str, NotificationType],
        rendered: RenderedMessage,
        contact: ClientContact,
        related_entity: Optional[RelatedEntity] = None,
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        """
        Gate, select, send and log one notification.

        Args:
            client_id: Target client
            notification_type: Notification category
            rendered: Subject/body/HTML to send
            contact: Client email/phone
            related_entity: Entity that triggered the notification
            now: Override for the quiet-hours clock

        Returns:
            DispatchResult; success means at least one channel delivered
        """
        type_value = getattr(notification_type, "value", notification_type)
        prefs = await self.repository.get_preferences(client_id)

        if not is_outside_quiet_hours(prefs, now):
            logger.info(f"Quiet hours active for client {client_id}, skipping {type_value}")
            await self.repository.log(NotificationLogEntry(
                client_id=client_id,
                notification_type=type_value,
                notification_category="system",
                subject=rendered.subject,
                message=rendered.body,
                delivery_method=DeliveryMethod.NONE,
                status=DeliveryStatus.SKIPPED,
                related_entity=related_entity,
                metadata={"reason": SKIP_REASON_QUIET_HOURS},
            ))
            return DispatchResult(
                success=False,
                skipped=True,
                reason=SKIP_REASON_QUIET_HOURS,
                message="Notification suppressed during quiet hours",
            )

        decision = select_channels(type_value, prefs, has_email=bool(contact.email))

        branches: list[Awaitable[ChannelResult]] = []
        if decision.send_email and contact.email:
            branches.append(self._deliver(
                Channel.EMAIL,
                lambda: self.email_provider.send_email(
                    to=contact.email,
                    subject=rendered.subject,
                    html=rendered.html,
                    text=rendered.body,
                ),
                client_id, type_value, rendered, contact, related_entity,
            ))
        if decision.send_sms and contact.phone:
            branches.append(self._deliver(
                Channel.SMS,
                lambda: self.sms_provider.send_sms(to=contact.phone, body=rendered.sms_text()),
                client_id, type_value, rendered, contact, related_entity,
            ))

        if not branches:
            logger.info(
                f"No deliverable channel for client {client_id} ({type_value}): "
                f"email={decision.send_email}/{bool(contact.email)} "
                f"sms={decision.send_sms}/{bool(contact.phone)}"
            )
            return DispatchResult(
                success=False,
                message="No enabled channel with a known recipient",
            )

        results = await asyncio.gather(*branches)
        by_channel = {r.channel: r for r in results}
        email_result = by_channel.get(Channel.EMAIL)
        sms_result = by_channel.get(Channel.SMS)
        success = any(r.success for r in results)

        return DispatchResult(
            success=success,
            email_result=email_result,
            sms_result=sms_result,
            message="Notification sent" if success else "All delivery attempts failed",
        )

    async def send_template(
        self,
        template_name: str,
        data: dict[str, Any],
        client_id: UUID,
        notification_type: Union[str, NotificationType],
        contact: ClientContact,
        related_entity: Optional[RelatedEntity] = None,
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        """
        Render a template with the practice's branding and dispatch it.

        A render failure returns a failed DispatchResult carrying the
        template error message; nothing is sent or logged.
        """
        branding = await self.repository.get_branding(contact.user_id)
        rendered = self.renderer.render(template_name, data, branding)
        if rendered.is_err:
            return DispatchResult(success=False, message=rendered.error.message)

        return await self.dispatch(
            client_id,
            notification_type,
            rendered.value,
            contact,
            related_entity=related_entity,
            now=now,
        )

    async def _deliver(
        self,
        channel: Channel,
        send: Callable[[], Awaitable[ProviderResult]],
        client_id: UUID,
        notification_type: str,
        rendered: RenderedMessage,
        contact: ClientContact,
        related_entity: Optional[RelatedEntity],
    ) -> ChannelResult:
        """Call one provider, then log the outcome."""
        recipient = contact.email if channel == Channel.EMAIL else contact.phone

        try:
            outcome = await asyncio.wait_for(send(), timeout=self.provider_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"{channel.value} provider timed out after {self.provider_timeout}s "
                f"for client {client_id}"
            )
            outcome = ProviderResult(
                success=False,
                message=f"Provider timed out after {self.provider_timeout:g} seconds",
                provider=channel.value,
            )
        except Exception as e:
            # Providers are opaque collaborators; any error is a failed delivery
            logger.error(f"{channel.value} provider raised for client {client_id}: {e}")
            outcome = ProviderResult(success=False, message=str(e), provider=channel.value)

        timestamp = utcnow()
        metadata: dict[str, Any] = {"provider": outcome.provider}
        if outcome.provider_message_id:
            metadata["messageId"] = outcome.provider_message_id
        if not outcome.success:
            metadata["error"] = outcome.message

        is_email = channel == Channel.EMAIL
        await self.repository.log(NotificationLogEntry(
            client_id=client_id,
            notification_type=notification_type,
            notification_category=channel.value,
            subject=rendered.subject,
            message=rendered.body if is_email else rendered.sms_text(),
            delivery_method=DeliveryMethod.EMAIL if is_email else DeliveryMethod.SMS,
            recipient_email=contact.email if is_email else None,
            recipient_phone=None if is_email else contact.phone,
            status=DeliveryStatus.SENT if outcome.success else DeliveryStatus.FAILED,
            sent_at=timestamp if outcome.success else None,
            failed_at=None if outcome.success else timestamp,
            related_entity=related_entity,
            metadata=metadata,
        ))

        if outcome.success:
            logger.info(f"{channel.value} notification sent to client {client_id}")
        else:
            logger.warning(f"{channel.value} notification failed for client {client_id}: {outcome.message}")

        return ChannelResult(
            channel=channel,
            success=outcome.success,
            message=outcome.message,
            recipient=recipient,
            provider_message_id=outcome.provider_message_id,
        )


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get notification dispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
