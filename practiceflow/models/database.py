"""
Database Models

SQLAlchemy ORM models for the PracticeFlow practice-management backend.
"""

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric,
    String, Text, Time, Enum as SQLEnum, text
)
from sqlalchemy.dialects.postgresql import UUID, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class SubscriptionStatus(str, Enum):
    """Stripe-mirrored subscription status."""
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"


class ContactMethod(str, Enum):
    """Preferred contact method."""
    EMAIL = "email"
    SMS = "sms"


class DeliveryMethod(str, Enum):
    """How a notification was (or was not) delivered."""
    EMAIL = "email"
    SMS = "sms"
    NONE = "none"


class DeliveryStatus(str, Enum):
    """Notification delivery status."""
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


class AuditAction(str, Enum):
    """Audit log action enumeration."""
    CREATE_ACCOUNT = "create_account"
    REGISTER = "register"
    UPDATE_PREFERENCES = "update_preferences"
    SEND_MESSAGE = "send_message"
    SELECT_ADDON = "select_addon"
    CREATE_PAYMENT_LINK = "create_payment_link"
    GENERATE_NOTE = "generate_note"


class User(Base, TimestampMixin):
    """
    Practice owner / clinician.

    Each user is a tenant: clients, invoices and branding hang off it.
    Authenticates API calls with a hashed practice API key.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="admin")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    api_key_hash: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    subscription_plan: Mapped[str] = mapped_column(
        String(20),
        default="essential",
        doc="Plan tier: essential, professional, complete"
    )
    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        SQLEnum(SubscriptionStatus),
        default=SubscriptionStatus.TRIALING
    )
    selected_addon: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Professional-tier addon: ai_notes or telehealth"
    )
    addon_changed_this_cycle: Mapped[bool] = mapped_column(Boolean, default=False)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    practice_settings: Mapped[Optional["PracticeSettings"]] = relationship(
        "PracticeSettings",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    clients: Mapped[List["Client"]] = relationship(
        "Client",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', plan='{self.subscription_plan}')>"


class PracticeSettings(Base, TimestampMixin):
    """Practice branding and contact details (one per user)."""

    __tablename__ = "practice_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    practice_name: Mapped[str] = mapped_column(String(255), nullable=False)
    practice_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    practice_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    practice_website: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    provider_license: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="practice_settings")

    def __repr__(self) -> str:
        return f"<PracticeSettings(user_id={self.user_id}, name='{self.practice_name}')>"


class Client(Base, TimestampMixin):
    """
    Client (patient) of a practice.

    Deleting a client cascades to its portal account, contact preferences,
    notification log and messages.
    """

    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_client_user", "user_id"),
        Index("idx_client_email", "user_id", "email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="clients")
    notification_settings: Mapped[Optional["ClientNotificationSettings"]] = relationship(
        "ClientNotificationSettings",
        back_populates="client",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        """Return full name."""
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.full_name}')>"


class ClientUser(Base, TimestampMixin):
    """Client portal login (at most one per client and per email)."""

    __tablename__ = "client_users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    verification_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<ClientUser(id={self.id}, client_id={self.client_id}, verified={self.is_verified})>"


class ClientNotificationSettings(Base, TimestampMixin):
    """
    Per-client contact preferences.

    Channel master toggles, per-category sub-toggles, preferred contact
    method and quiet hours. The timezone column is stored but the quiet-hours
    check compares against the server's local clock.
    """

    __tablename__ = "client_notification_settings"
    __table_args__ = (
        CheckConstraint(
            "NOT quiet_hours_enabled OR "
            "(quiet_hours_start IS NOT NULL AND quiet_hours_end IS NOT NULL)",
            name="ck_quiet_hours_window",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )

    # Channel master toggles
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True)
    sms_notifications: Mapped[bool] = mapped_column(Boolean, default=False)

    # Email categories
    email_appointment_reminders: Mapped[bool] = mapped_column(Boolean, default=True)
    email_appointment_confirmations: Mapped[bool] = mapped_column(Boolean, default=True)
    email_invoice_reminders: Mapped[bool] = mapped_column(Boolean, default=True)
    email_payment_receipts: Mapped[bool] = mapped_column(Boolean, default=True)
    email_document_updates: Mapped[bool] = mapped_column(Boolean, default=True)
    email_marketing: Mapped[bool] = mapped_column(Boolean, default=False)

    # SMS categories
    sms_appointment_reminders: Mapped[bool] = mapped_column(Boolean, default=False)
    sms_appointment_confirmations: Mapped[bool] = mapped_column(Boolean, default=False)
    sms_invoice_reminders: Mapped[bool] = mapped_column(Boolean, default=False)
    sms_payment_receipts: Mapped[bool] = mapped_column(Boolean, default=False)
    sms_document_updates: Mapped[bool] = mapped_column(Boolean, default=False)
    sms_marketing: Mapped[bool] = mapped_column(Boolean, default=False)

    preferred_contact_method: Mapped[ContactMethod] = mapped_column(
        SQLEnum(ContactMethod),
        default=ContactMethod.EMAIL
    )

    # Quiet hours
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    quiet_hours_start: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    quiet_hours_end: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    timezone: Mapped[str] = mapped_column(String(50), default="America/New_York")

    client: Mapped["Client"] = relationship("Client", back_populates="notification_settings")

    def __repr__(self) -> str:
        return (
            f"<ClientNotificationSettings(client_id={self.client_id}, "
            f"email={self.email_notifications}, sms={self.sms_notifications})>"
        )


class NotificationLog(Base):
    """
    Append-only record of one attempted delivery.

    Rows are never updated except for provider callback timestamps
    (delivered/opened/clicked).
    """

    __tablename__ = "notification_log"
    __table_args__ = (
        Index("idx_notification_client_time", "client_id", "created_at"),
        Index("idx_notification_status", "status"),
        Index("idx_notification_related", "related_entity_type", "related_entity_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    notification_category: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        SQLEnum(DeliveryMethod),
        nullable=False
    )
    recipient_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    recipient_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus),
        nullable=False
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    clicked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    related_entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # "metadata" is reserved on declarative classes
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationLog(id={self.id}, client_id={self.client_id}, "
            f"type='{self.notification_type}', method={self.delivery_method.value}, "
            f"status={self.status.value})>"
        )


class Invoice(Base, TimestampMixin):
    """Client invoice with its optional Stripe payment link."""

    __tablename__ = "invoices"
    __table_args__ = (
        Index("idx_invoice_client", "client_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_status: Mapped[str] = mapped_column(String(20), default="unpaid")
    stripe_payment_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    stripe_payment_link_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stripe_payment_link_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status='{self.payment_status}')>"


class ClientMessage(Base):
    """Message exchanged between a client and the practice."""

    __tablename__ = "client_messages"
    __table_args__ = (
        Index("idx_message_client_time", "client_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    subject: Mapped[str] = mapped_column(String(255), default="Message")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), default="chat")
    priority: Mapped[str] = mapped_column(String(20), default="normal")
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sender_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sender_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sender_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ClientMessage(id={self.id}, client_id={self.client_id}, sender='{self.sender_type}')>"


class AuditLog(Base):
    """
    Audit Log model.

    Immutable audit trail for HIPAA compliance and security monitoring.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_actor_time", "actor_id", "timestamp"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_resource", "resource_type", "resource_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    actor_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    actor_type: Mapped[str] = mapped_column(String(20), default="user")
    timestamp: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    action: Mapped[AuditAction] = mapped_column(
        SQLEnum(AuditAction),
        nullable=False
    )
    resource_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, action={self.action.value}, "
            f"timestamp={self.timestamp})>"
        )
