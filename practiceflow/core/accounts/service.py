"""
Account Service

Practice (clinician) signup with a Stripe trial subscription, and client
portal registration.

Signup is a compound operation across Stripe and the database; every
failure after the first external side effect undoes what was created:

    customer fails      -> nothing to undo
    subscription fails  -> delete customer
    database write fails -> cancel subscription, delete customer

Welcome and verification emails are best-effort: a failed send is logged
and never fails the primary operation.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from practiceflow.config import settings
from practiceflow.core.billing.plans import (
    PLANS,
    Addon,
    PlanTier,
    parse_addon,
    parse_plan,
    price_id_for,
)
from practiceflow.core.errors import ConflictError, NotFoundError, ValidationError
from practiceflow.core.notifications.repository import default_preferences_row
from practiceflow.core.notifications.templates import render_layout
from practiceflow.core.notifications.types import PracticeBranding
from practiceflow.infra.database import run_in_transaction
from practiceflow.infra.notifications import EmailProvider
from practiceflow.infra.payments import PaymentGatewayError, StripeGateway
from practiceflow.models.database import (
    AuditAction,
    AuditLog,
    Client,
    ClientNotificationSettings,
    ClientUser,
    PracticeSettings,
    SubscriptionStatus,
    User,
)

from .credentials import (
    generate_api_key,
    generate_verification_token,
    hash_api_key,
    hash_password,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8

SIGNUP_REQUIRED_FIELDS = (
    "plan", "first_name", "last_name", "email", "practice_name", "username", "password",
)


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            details={"field": "password"},
        )


def _check_email(email: str) -> None:
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format", details={"field": "email"})


@dataclass
class PracticeSignup:
    """Practice signup request."""
    plan: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    practice_name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    addon: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def validate(self) -> tuple[PlanTier, Optional[Addon]]:
        """
        Validate the request.

        Returns:
            Parsed (plan, addon)

        Raises:
            ValidationError: On any missing or invalid field
        """
        missing = [name for name in SIGNUP_REQUIRED_FIELDS if not getattr(self, name)]
        if missing:
            raise ValidationError(
                "Missing required fields",
                details={"missing": missing, "required": list(SIGNUP_REQUIRED_FIELDS)},
            )

        plan = parse_plan(self.plan)
        addon = parse_addon(self.addon)
        if plan == PlanTier.PROFESSIONAL and addon is None:
            raise ValidationError(
                "Professional tier requires add-on selection",
                details={"field": "addon", "allowed": [a.value for a in Addon]},
            )
        if plan != PlanTier.PROFESSIONAL:
            addon = None

        _check_email(self.email)
        _check_password(self.password)
        return plan, addon


def _stripe_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None)


def _subscription_status(value: Optional[str]) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(value)
    except ValueError:
        return SubscriptionStatus.INCOMPLETE


class AccountService:
    """Practice signup and client portal registration."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: StripeGateway,
        email_provider: EmailProvider,
    ):
        self.db = db
        self.gateway = gateway
        self.email_provider = email_provider

    # === Practice signup ===

    async def create_practice_account(self, request: PracticeSignup) -> dict[str, Any]:
        """
        Create a practice account with a trialing Stripe subscription.

        Returns:
            Response body including the practice API key (shown once)

        Raises:
            ValidationError: Invalid request
            ConflictError: Username or email already registered
            PaymentGatewayError: Stripe failed (partial resources cleaned up)
        """
        plan, addon = request.validate()
        email = request.email.strip().lower()

        existing = await self.db.scalar(select(User.id).where(User.username == request.username))
        if existing is not None:
            raise ConflictError("Username already taken", details={"field": "username"})

        existing = await self.db.scalar(select(User.id).where(func.lower(User.email) == email))
        if existing is not None:
            raise ConflictError(
                "An account with this email already exists",
                details={"field": "email"},
            )

        customer_id = await self.gateway.create_customer(
            email=email,
            name=request.full_name,
            metadata={
                "practice_name": request.practice_name,
                "license_number": request.license_number or "",
                "username": request.username,
            },
        )

        try:
            subscription = await self.gateway.create_subscription(
                customer_id=customer_id,
                price_id=price_id_for(plan, addon),
                trial_days=settings.trial_period_days,
                metadata={
                    "plan": plan.value,
                    "add_on": addon.value if addon else "none",
                    "username": request.username,
                },
            )
        except PaymentGatewayError:
            logger.error(f"Subscription creation failed, removing customer {customer_id}")
            await self._cleanup_stripe(customer_id, None)
            raise

        api_key = generate_api_key("live" if settings.is_production else "test")
        trial_end = _stripe_timestamp(getattr(subscription, "trial_end", None))

        async def write(db: AsyncSession) -> User:
            user = User(
                username=request.username,
                email=email,
                password_hash=hash_password(request.password),
                full_name=request.full_name,
                role="admin",
                is_active=True,
                api_key_hash=hash_api_key(api_key),
                subscription_plan=plan.value,
                subscription_status=_subscription_status(subscription.status),
                selected_addon=addon.value if addon else None,
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription.id,
                trial_ends_at=trial_end,
            )
            db.add(user)
            await db.flush()

            db.add(PracticeSettings(
                user_id=user.id,
                practice_name=request.practice_name,
                practice_phone=request.phone,
                practice_email=email,
                provider_license=request.license_number,
            ))
            db.add(AuditLog(
                actor_id=str(user.id),
                actor_type="user",
                action=AuditAction.CREATE_ACCOUNT,
                resource_type="user",
                resource_id=str(user.id),
                details={"plan": plan.value, "addon": addon.value if addon else None},
            ))
            return user

        try:
            user = await run_in_transaction(self.db, write)
        except IntegrityError as e:
            logger.warning(
                f"Signup for {request.username} lost a race on a unique key, "
                f"canceling subscription {subscription.id} and customer {customer_id}"
            )
            await self._cleanup_stripe(customer_id, subscription.id)
            raise ConflictError(
                "Username or email already registered",
                details={"fields": ["username", "email"]},
            ) from e
        except Exception:
            logger.error(
                f"Account write failed for {request.username}, "
                f"canceling subscription {subscription.id} and customer {customer_id}"
            )
            await self._cleanup_stripe(customer_id, subscription.id)
            raise

        logger.info(
            f"Account created: user={user.id} plan={plan.value} "
            f"addon={addon.value if addon else 'none'} subscription={subscription.id}"
        )

        await self._send_welcome_email(email, request)

        return {
            "success": True,
            "message": "Account created successfully",
            "user": {
                "id": str(user.id),
                "username": user.username,
                "email": user.email,
                "full_name": user.full_name,
                "role": user.role,
            },
            "subscription": {
                "id": subscription.id,
                "status": user.subscription_status.value,
                "plan": plan.value,
                "addon": addon.value if addon else None,
                "trial_end": trial_end.isoformat() if trial_end else None,
                "amount": PLANS[plan].monthly_price,
            },
            "api_key": api_key,
            "next_steps": {
                "message": f"Your {settings.trial_period_days}-day free trial has started!",
                "actions": [
                    "Complete your practice profile",
                    "Add your first client",
                    "Explore features",
                    "Add payment method before trial ends",
                ],
            },
        }

    async def _cleanup_stripe(self, customer_id: str, subscription_id: Optional[str]) -> None:
        """Undo partially created Stripe resources; failures are only logged."""
        if subscription_id:
            try:
                await self.gateway.cancel_subscription(subscription_id)
            except PaymentGatewayError as e:
                logger.error(f"Failed to cancel Stripe subscription {subscription_id}: {e}")
        try:
            await self.gateway.delete_customer(customer_id)
        except PaymentGatewayError as e:
            logger.error(f"Failed to delete Stripe customer {customer_id}: {e}")

    async def _send_welcome_email(self, email: str, request: PracticeSignup) -> None:
        branding = PracticeBranding(practice_name=settings.platform_name)
        body = (
            f"Welcome to {settings.platform_name}, {request.first_name}!\n\n"
            f"Your {settings.trial_period_days}-day free trial for {request.practice_name} has started.\n"
            f"Sign in at {settings.app_url} to finish setting up your practice."
        )
        html = render_layout(
            f"<p>Welcome to {settings.platform_name}, {escape(request.first_name)}!</p>"
            f"<p>Your {settings.trial_period_days}-day free trial has started.</p>"
            f'<p><a href="{settings.app_url}">Sign in</a> to finish setting up your practice.</p>',
            branding,
        )
        try:
            result = await self.email_provider.send_email(
                to=email,
                subject=f"Welcome to {settings.platform_name}",
                html=html,
                text=body,
            )
        except Exception as e:
            logger.warning(f"Welcome email to new account failed: {e}")
            return
        if not result.success:
            logger.warning(f"Welcome email not sent: {result.message}")

    # === Client portal registration ===

    async def register_client_portal(
        self,
        client_id: Optional[UUID],
        email: Optional[str],
        password: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create a client portal login with default contact preferences.

        The login, preferences and audit row commit together.

        Raises:
            ValidationError: Missing fields, weak password, bad or mismatched email
            NotFoundError: Unknown client
            ConflictError: Portal account already exists for client or email
        """
        if not client_id or not email or not password:
            raise ValidationError("Client ID, email, and password are required")

        _check_password(password)
        _check_email(email)
        email = email.strip().lower()

        client = await self.db.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client not found", details={"client_id": str(client_id)})

        if client.email and client.email.lower() != email:
            raise ValidationError("Email does not match client record", details={"field": "email"})

        existing = await self.db.scalar(
            select(ClientUser.id).where(
                or_(ClientUser.email == email, ClientUser.client_id == client_id)
            )
        )
        if existing is not None:
            raise ConflictError("An account already exists for this client or email")

        has_settings = await self.db.scalar(
            select(ClientNotificationSettings.id)
            .where(ClientNotificationSettings.client_id == client_id)
        )
        token = generate_verification_token()

        async def write(db: AsyncSession) -> ClientUser:
            portal_user = ClientUser(
                client_id=client_id,
                email=email,
                password_hash=hash_password(password),
                verification_token=token,
                is_active=True,
                is_verified=False,
            )
            db.add(portal_user)
            if has_settings is None:
                db.add(default_preferences_row(client_id))
            await db.flush()

            db.add(AuditLog(
                actor_id=str(client_id),
                actor_type="client",
                action=AuditAction.REGISTER,
                resource_type="client_user",
                resource_id=str(portal_user.id),
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
            ))
            return portal_user

        try:
            portal_user = await run_in_transaction(self.db, write)
        except IntegrityError as e:
            logger.warning(f"Portal registration for client {client_id} lost a race on a unique key")
            raise ConflictError("An account already exists for this client or email") from e
        logger.info(f"Client portal account created for client {client_id}")

        await self._send_verification_email(email, client.full_name, token)

        return {
            "success": True,
            "message": "Account created successfully. Please check your email to verify your account.",
            "data": {
                "id": str(portal_user.id),
                "email": portal_user.email,
                "client_id": str(portal_user.client_id),
            },
        }

    async def _send_verification_email(self, email: str, name: str, token: str) -> None:
        link = f"{settings.portal_url}?verify={token}"
        text = f"Welcome to the Client Portal! Please verify your email by visiting: {link}"
        html = render_layout(
            "<h2>Welcome to the Client Portal</h2>"
            f"<p>Hello {escape(name)},</p>"
            "<p>Thank you for creating your client portal account. "
            "Please verify your email address by clicking the link below:</p>"
            f'<p><a href="{link}">Verify Email</a></p>'
            f"<p>Or copy and paste this link into your browser:</p><p>{link}</p>"
            "<p>This link will expire in 24 hours.</p>"
            "<p>If you did not create this account, please ignore this email.</p>",
            PracticeBranding(),
        )
        try:
            result = await self.email_provider.send_email(
                to=email,
                subject="Verify Your Client Portal Account",
                html=html,
                text=text,
            )
        except Exception as e:
            logger.warning(f"Verification email failed: {e}")
            return
        if not result.success:
            logger.warning(f"Verification email not sent: {result.message}")
