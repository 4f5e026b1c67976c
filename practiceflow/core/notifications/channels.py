"""
Channel Selector

Decides, per channel, whether a notification type may be sent to a client.
Each channel is evaluated independently:

1. Master toggle off -> disabled.
2. Category sub-toggle mapped for the type -> its value.
3. No mapping for the type -> master toggle (already on).

Without a preference record, email is sent only when an address is known
and SMS is never sent. Recipient presence is checked by the dispatcher.
"""

from typing import Optional, Union

from .types import Channel, ChannelDecision, ContactPreferences, NotificationType


# notification type -> (email sub-toggle, sms sub-toggle)
CATEGORY_TOGGLES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.APPOINTMENT_REMINDER: (
        "email_appointment_reminders", "sms_appointment_reminders"
    ),
    NotificationType.APPOINTMENT_CONFIRMATION: (
        "email_appointment_confirmations", "sms_appointment_confirmations"
    ),
    NotificationType.INVOICE_REMINDER: (
        "email_invoice_reminders", "sms_invoice_reminders"
    ),
    NotificationType.PAYMENT_RECEIPT: (
        "email_payment_receipts", "sms_payment_receipts"
    ),
    NotificationType.DOCUMENT_UPDATE: (
        "email_document_updates", "sms_document_updates"
    ),
    NotificationType.MARKETING: (
        "email_marketing", "sms_marketing"
    ),
}


def category_toggle(notification_type: Union[str, NotificationType], channel: Channel) -> Optional[str]:
    """Name of the preference field gating ``notification_type`` on ``channel``."""
    try:
        key = NotificationType(notification_type)
    except ValueError:
        return None
    email_field, sms_field = CATEGORY_TOGGLES[key]
    return email_field if channel == Channel.EMAIL else sms_field


def is_channel_enabled(
    notification_type: Union[str, NotificationType],
    prefs: ContactPreferences,
    channel: Channel,
) -> bool:
    """Apply the master toggle then the category sub-toggle for one channel."""
    master = prefs.email_notifications if channel == Channel.EMAIL else prefs.sms_notifications
    if not master:
        return False

    toggle = category_toggle(notification_type, channel)
    if toggle is None:
        return True
    # A False sub-toggle turns the channel off; it never falls back to the master toggle
    return bool(getattr(prefs, toggle))


def select_channels(
    notification_type: Union[str, NotificationType],
    prefs: Optional[ContactPreferences],
    has_email: bool = False,
) -> ChannelDecision:
    """
    Decide which channels should fire for a notification.

    Args:
        notification_type: Notification category (unknown types fall back
            to the master toggles)
        prefs: Client contact preferences, or None if the client has none
        has_email: Whether an email address is known for the client

    Returns:
        ChannelDecision
    """
    if prefs is None:
        return ChannelDecision(send_email=has_email, send_sms=False)

    return ChannelDecision(
        send_email=is_channel_enabled(notification_type, prefs, Channel.EMAIL),
        send_sms=is_channel_enabled(notification_type, prefs, Channel.SMS),
    )
