"""Types for notification gating, rendering and delivery."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, time
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from practiceflow.core.errors import ValidationError
from practiceflow.models.database import ContactMethod, DeliveryMethod, DeliveryStatus


class NotificationType(str, Enum):
    """Notification categories that carry their own per-channel toggles."""

    APPOINTMENT_REMINDER = "appointment_reminder"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    INVOICE_REMINDER = "invoice_reminder"
    PAYMENT_RECEIPT = "payment_receipt"
    DOCUMENT_UPDATE = "document_update"
    MARKETING = "marketing"


class Channel(str, Enum):
    """Delivery medium."""

    EMAIL = "email"
    SMS = "sms"


# Reason written to metadata when a dispatch is suppressed
SKIP_REASON_QUIET_HOURS = "quiet_hours"


@dataclass(frozen=True)
class ContactPreferences:
    """
    Snapshot of one client's contact preferences.

    Built from a ClientNotificationSettings row; the evaluator and selector
    only ever see this snapshot.
    """

    client_id: Optional[UUID] = None

    email_notifications: bool = True
    sms_notifications: bool = False

    email_appointment_reminders: bool = True
    email_appointment_confirmations: bool = True
    email_invoice_reminders: bool = True
    email_payment_receipts: bool = True
    email_document_updates: bool = True
    email_marketing: bool = False

    sms_appointment_reminders: bool = False
    sms_appointment_confirmations: bool = False
    sms_invoice_reminders: bool = False
    sms_payment_receipts: bool = False
    sms_document_updates: bool = False
    sms_marketing: bool = False

    preferred_contact_method: ContactMethod = ContactMethod.EMAIL

    quiet_hours_enabled: bool = False
    quiet_hours_start: Optional[time] = None
    quiet_hours_end: Optional[time] = None
    # Stored but not applied by the quiet-hours check
    timezone: str = "America/New_York"

    def validate(self) -> None:
        """
        Check the quiet-hours invariant.

        Raises:
            ValidationError: If quiet hours are enabled without both bounds
        """
        if self.quiet_hours_enabled and (
            self.quiet_hours_start is None or self.quiet_hours_end is None
        ):
            raise ValidationError(
                "Quiet hours start and end are required when quiet hours are enabled",
                details={"fields": ["quiet_hours_start", "quiet_hours_end"]},
            )

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_model(cls, row: Any) -> "ContactPreferences":
        """Build a snapshot from a ClientNotificationSettings row."""
        return cls(**{name: getattr(row, name) for name in cls.field_names()})

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dictionary."""
        data = asdict(self)
        data["client_id"] = str(self.client_id) if self.client_id else None
        data["preferred_contact_method"] = self.preferred_contact_method.value
        data["quiet_hours_start"] = (
            self.quiet_hours_start.strftime("%H:%M") if self.quiet_hours_start else None
        )
        data["quiet_hours_end"] = (
            self.quiet_hours_end.strftime("%H:%M") if self.quiet_hours_end else None
        )
        return data


@dataclass(frozen=True)
class ChannelDecision:
    """Per-channel send decision."""

    send_email: bool
    send_sms: bool

    def to_dict(self) -> dict[str, bool]:
        return {"send_email": self.send_email, "send_sms": self.send_sms}


@dataclass(frozen=True)
class PracticeBranding:
    """Practice details injected into every rendered template."""

    practice_name: Optional[str] = None
    practice_phone: Optional[str] = None
    practice_email: Optional[str] = None
    practice_website: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.practice_name or "Your Practice"


@dataclass(frozen=True)
class ClientContact:
    """Where a client can be reached."""

    client_id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    user_id: Optional[UUID] = None


@dataclass(frozen=True)
class RelatedEntity:
    """Entity that triggered a notification (appointment, invoice, ...)."""

    entity_type: str
    entity_id: str


@dataclass(frozen=True)
class RenderedMessage:
    """Rendered subject, plain-text body and HTML body."""

    subject: str
    body: str
    html: str

    def sms_text(self) -> str:
        """SMS carries the subject and plain body only."""
        return f"{self.subject}\n\n{self.body}"

    def to_dict(self) -> dict[str, str]:
        return {"subject": self.subject, "body": self.body, "html": self.html}


@dataclass(frozen=True)
class TemplateError:
    """Structured template failure."""

    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.code, "message": self.message}


@dataclass
class NotificationLogEntry:
    """
    One attempted delivery, ready to be appended to the log.

    A skipped entry must carry a ``reason`` in its metadata.
    """

    client_id: UUID
    notification_type: str
    delivery_method: DeliveryMethod
    status: DeliveryStatus
    notification_category: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    related_entity: Optional[RelatedEntity] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.status == DeliveryStatus.SKIPPED and not self.metadata.get("reason"):
            raise ValueError("Skipped notification log entries require a metadata reason")


@dataclass
class ChannelResult:
    """Outcome of one channel within a dispatch."""

    channel: Channel
    success: bool
    message: str
    recipient: Optional[str] = None
    provider_message_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "success": self.success,
            "message": self.message,
            "recipient": self.recipient,
            "provider_message_id": self.provider_message_id,
        }


@dataclass
class DispatchResult:
    """Outcome of a full dispatch."""

    success: bool
    email_result: Optional[ChannelResult] = None
    sms_result: Optional[ChannelResult] = None
    skipped: bool = False
    reason: Optional[str] = None
    message: Optional[str] = None

    @property
    def attempted_channels(self) -> list[Channel]:
        return [r.channel for r in (self.email_result, self.sms_result) if r is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "skipped": self.skipped,
            "reason": self.reason,
            "message": self.message,
            "email_result": self.email_result.to_dict() if self.email_result else None,
            "sms_result": self.sms_result.to_dict() if self.sms_result else None,
        }
