"""Notification preference and delivery-gating engine."""

from .types import (
    Channel,
    ChannelDecision,
    ChannelResult,
    ClientContact,
    ContactPreferences,
    DispatchResult,
    NotificationLogEntry,
    NotificationType,
    PracticeBranding,
    RelatedEntity,
    RenderedMessage,
    TemplateError,
    SKIP_REASON_QUIET_HOURS,
)
from .quiet_hours import is_outside_quiet_hours
from .channels import select_channels
from .templates import TemplateRenderer, get_template_renderer
from .repository import NotificationRepository, get_notification_repository
from .dispatcher import NotificationDispatcher, get_notification_dispatcher

__all__ = [
    # Types
    "Channel",
    "ChannelDecision",
    "ChannelResult",
    "ClientContact",
    "ContactPreferences",
    "DispatchResult",
    "NotificationLogEntry",
    "NotificationType",
    "PracticeBranding",
    "RelatedEntity",
    "RenderedMessage",
    "TemplateError",
    "SKIP_REASON_QUIET_HOURS",
    # Gating
    "is_outside_quiet_hours",
    "select_channels",
    # Rendering
    "TemplateRenderer",
    "get_template_renderer",
    # Delivery
    "NotificationRepository",
    "get_notification_repository",
    "NotificationDispatcher",
    "get_notification_dispatcher",
]
