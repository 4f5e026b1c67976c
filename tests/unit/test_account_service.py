"""Tests for practice signup and client portal registration."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from practiceflow.config import settings
from practiceflow.core.accounts.credentials import (
    generate_api_key,
    hash_api_key,
    hash_password,
    verify_password,
)
from practiceflow.core.accounts.service import AccountService, PracticeSignup
from practiceflow.core.errors import ConflictError, NotFoundError, ValidationError
from practiceflow.infra.notifications import ProviderResult
from practiceflow.infra.payments import PaymentGatewayError
from practiceflow.models.database import (
    AuditAction,
    AuditLog,
    ClientNotificationSettings,
    ClientUser,
    PracticeSettings,
    SubscriptionStatus,
    User,
)


def signup(**overrides) -> PracticeSignup:
    values = dict(
        plan="professional",
        addon="ai_notes",
        first_name="Ada",
        last_name="Lovelace",
        email="Ada@Example.test",
        practice_name="Analytical Therapy",
        username="ada",
        password="correct-horse",
    )
    values.update(overrides)
    return PracticeSignup(**values)


@pytest.fixture
def db():
    session = AsyncMock()
    session.scalar = AsyncMock(return_value=None)
    session.add = MagicMock()
    return session


@pytest.fixture
def gateway():
    gateway = AsyncMock()
    gateway.create_customer = AsyncMock(return_value="cus_123")
    gateway.create_subscription = AsyncMock(
        return_value=SimpleNamespace(id="sub_456", status="trialing", trial_end=1767225600)
    )
    return gateway


@pytest.fixture
def email_provider():
    provider = AsyncMock()
    provider.send_email = AsyncMock(return_value=ProviderResult(True, "Email sent", "ses", "m-1"))
    return provider


@pytest.fixture
def service(db, gateway, email_provider):
    return AccountService(db, gateway, email_provider)


def added(db, model):
    return [c.args[0] for c in db.add.call_args_list if isinstance(c.args[0], model)]


class TestCredentials:

    def test_password_round_trip(self):
        hashed = hash_password("correct-horse")
        assert hashed != "correct-horse"
        assert verify_password("correct-horse", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_rejects_garbage_hash(self):
        assert verify_password("x", "not-a-bcrypt-hash") is False

    def test_api_key_format(self):
        key = generate_api_key("test")
        assert key.startswith("pf_test_")
        assert len(hash_api_key(key)) == 64

    def test_api_key_bad_environment(self):
        with pytest.raises(ValueError):
            generate_api_key("staging")


class TestPracticeSignupValidation:

    def test_missing_fields_listed(self):
        with pytest.raises(ValidationError) as exc:
            signup(username=None, password="").validate()
        assert exc.value.details["missing"] == ["username", "password"]

    def test_professional_requires_addon(self):
        with pytest.raises(ValidationError) as exc:
            signup(addon=None).validate()
        assert exc.value.message == "Professional tier requires add-on selection"

    def test_addon_dropped_for_other_plans(self):
        plan, addon = signup(plan="complete", addon="telehealth").validate()
        assert plan.value == "complete"
        assert addon is None

    def test_invalid_plan(self):
        with pytest.raises(ValidationError):
            signup(plan="enterprise").validate()

    def test_short_password(self):
        with pytest.raises(ValidationError):
            signup(password="short").validate()

    def test_bad_email(self):
        with pytest.raises(ValidationError):
            signup(email="not-an-email").validate()


class TestCreatePracticeAccount:
    """Test the signup compound operation and its cleanup."""

    @pytest.mark.asyncio
    async def test_success(self, service, db, gateway, email_provider):
        result = await service.create_practice_account(signup())

        assert result["success"] is True
        assert result["api_key"].startswith("pf_test_")
        assert result["subscription"]["id"] == "sub_456"
        assert result["subscription"]["status"] == "trialing"
        assert result["subscription"]["addon"] == "ai_notes"
        assert result["subscription"]["amount"] == 60
        assert result["user"]["email"] == "ada@example.test"

        assert gateway.create_subscription.await_args.kwargs["trial_days"] == settings.trial_period_days
        db.commit.assert_awaited_once()

        user = added(db, User)[0]
        assert user.subscription_status == SubscriptionStatus.TRIALING
        assert user.api_key_hash == hash_api_key(result["api_key"])
        assert user.stripe_customer_id == "cus_123"
        assert added(db, PracticeSettings)[0].practice_name == "Analytical Therapy"
        assert added(db, AuditLog)[0].action == AuditAction.CREATE_ACCOUNT
        email_provider.send_email.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_username(self, service, db, gateway):
        db.scalar.return_value = uuid4()

        with pytest.raises(ConflictError):
            await service.create_practice_account(signup())
        gateway.create_customer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_subscription_failure_deletes_customer(self, service, db, gateway):
        gateway.create_subscription.side_effect = PaymentGatewayError("Payment provider error")

        with pytest.raises(PaymentGatewayError):
            await service.create_practice_account(signup())

        gateway.delete_customer.assert_awaited_once_with("cus_123")
        gateway.cancel_subscription.assert_not_awaited()
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_database_failure_undoes_stripe(self, service, db, gateway):
        db.commit.side_effect = RuntimeError("constraint violated")

        with pytest.raises(RuntimeError):
            await service.create_practice_account(signup())

        db.rollback.assert_awaited_once()
        gateway.cancel_subscription.assert_awaited_once_with("sub_456")
        gateway.delete_customer.assert_awaited_once_with("cus_123")

    @pytest.mark.asyncio
    async def test_unique_key_race_is_conflict(self, service, db, gateway):
        db.commit.side_effect = IntegrityError("INSERT INTO users", {}, Exception("duplicate key"))

        with pytest.raises(ConflictError) as exc:
            await service.create_practice_account(signup())

        assert exc.value.status_code == 409
        db.rollback.assert_awaited_once()
        gateway.cancel_subscription.assert_awaited_once_with("sub_456")
        gateway.delete_customer.assert_awaited_once_with("cus_123")

    @pytest.mark.asyncio
    async def test_cleanup_failure_is_logged_not_raised(self, service, db, gateway):
        db.commit.side_effect = RuntimeError("constraint violated")
        gateway.cancel_subscription.side_effect = PaymentGatewayError("gone")

        with pytest.raises(RuntimeError):
            await service.create_practice_account(signup())

        gateway.delete_customer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_welcome_email_failure_does_not_fail_signup(self, service, email_provider):
        email_provider.send_email.side_effect = RuntimeError("SES down")

        result = await service.create_practice_account(signup())

        assert result["success"] is True


class TestRegisterClientPortal:
    """Test client portal registration."""

    @pytest.fixture
    def client(self):
        return SimpleNamespace(id=uuid4(), full_name="Jane Doe", email="jane@example.test")

    @pytest.fixture
    def db_with_client(self, db, client):
        db.get = AsyncMock(return_value=client)
        return db

    @pytest.mark.asyncio
    async def test_creates_login_preferences_and_audit(self, service, db_with_client, client,
                                                       email_provider):
        result = await service.register_client_portal(
            client.id, "Jane@Example.test", "correct-horse", ip_address="10.0.0.1"
        )

        assert result["success"] is True
        assert result["data"]["email"] == "jane@example.test"
        db_with_client.commit.assert_awaited_once()

        portal_user = added(db_with_client, ClientUser)[0]
        assert portal_user.is_verified is False
        assert len(portal_user.verification_token) == 64
        prefs = added(db_with_client, ClientNotificationSettings)[0]
        assert prefs.email_notifications is True
        assert prefs.sms_notifications is False
        audit = added(db_with_client, AuditLog)[0]
        assert audit.action == AuditAction.REGISTER
        assert audit.ip_address == "10.0.0.1"

        body = email_provider.send_email.await_args.kwargs["text"]
        assert portal_user.verification_token in body

    @pytest.mark.asyncio
    async def test_existing_preferences_kept(self, service, db_with_client, client):
        db_with_client.scalar.side_effect = [None, uuid4()]

        await service.register_client_portal(client.id, "jane@example.test", "correct-horse")

        assert added(db_with_client, ClientNotificationSettings) == []

    @pytest.mark.asyncio
    async def test_missing_fields(self, service):
        with pytest.raises(ValidationError):
            await service.register_client_portal(None, "jane@example.test", "correct-horse")

    @pytest.mark.asyncio
    async def test_unknown_client(self, service, db):
        db.get = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await service.register_client_portal(uuid4(), "jane@example.test", "correct-horse")

    @pytest.mark.asyncio
    async def test_email_mismatch(self, service, db_with_client, client):
        with pytest.raises(ValidationError) as exc:
            await service.register_client_portal(client.id, "other@example.test", "correct-horse")
        assert exc.value.message == "Email does not match client record"

    @pytest.mark.asyncio
    async def test_already_registered(self, service, db_with_client, client):
        db_with_client.scalar.return_value = uuid4()

        with pytest.raises(ConflictError):
            await service.register_client_portal(client.id, "jane@example.test", "correct-horse")

    @pytest.mark.asyncio
    async def test_unique_key_race_is_conflict(self, service, db_with_client, client,
                                               email_provider):
        db_with_client.commit.side_effect = IntegrityError(
            "INSERT INTO client_users", {}, Exception("duplicate key")
        )

        with pytest.raises(ConflictError):
            await service.register_client_portal(client.id, "jane@example.test", "correct-horse")

        db_with_client.rollback.assert_awaited_once()
        email_provider.send_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_verification_email_failure_still_succeeds(self, service, db_with_client, client,
                                                             email_provider):
        email_provider.send_email.return_value = ProviderResult(False, "not configured", "ses")

        result = await service.register_client_portal(client.id, "jane@example.test", "correct-horse")

        assert result["success"] is True
