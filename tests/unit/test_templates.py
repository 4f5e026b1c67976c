"""Tests for notification templates."""

from datetime import date
from decimal import Decimal

import pytest

from practiceflow.core.notifications.templates import (
    CAUTIONS,
    TemplateRenderer,
    format_currency,
    format_date,
)
from practiceflow.core.notifications.types import PracticeBranding


@pytest.fixture
def renderer():
    return TemplateRenderer()


@pytest.fixture
def branding():
    return PracticeBranding(
        practice_name="Calm Waters Therapy",
        practice_phone="555-0100",
        practice_email="hello@calmwaters.test",
    )


def invoice(**overrides):
    data = {
        "invoice_number": "INV-1001",
        "client_name": "Jane Doe",
        "total_amount": 150,
        "due_date": date(2025, 4, 1),
    }
    data.update(overrides)
    return data


class TestFormatting:

    @pytest.mark.parametrize("value, expected", [
        (150, "150.00"),
        ("99.5", "99.50"),
        (Decimal("10.005"), "10.01"),
        (0.1, "0.10"),
    ])
    def test_currency_two_decimals(self, value, expected):
        assert format_currency(value) == expected

    def test_date_formats(self):
        assert format_date(date(2025, 3, 4)) == "3/4/2025"
        assert format_date("2025-12-25") == "12/25/2025"
        assert format_date("2025-12-25T10:00:00Z") == "12/25/2025"


class TestRenderer:
    """Test rendering outcomes."""

    def test_unknown_template(self, renderer):
        result = renderer.render("no_such_template", {})
        assert result.is_err
        assert result.error.code == "template_not_found"
        assert result.error.message == 'Template "no_such_template" not found'

    def test_missing_field_is_error_not_exception(self, renderer):
        result = renderer.render("payment_received", {"invoice": {"invoice_number": "1"}})
        assert result.is_err
        assert result.error.code == "invalid_payload"

    def test_bad_amount_is_error(self, renderer):
        result = renderer.render("payment_received", {"invoice": invoice(total_amount="lots")})
        assert result.is_err
        assert result.error.code == "invalid_payload"

    def test_names(self, renderer):
        assert "payment_request" in renderer.names
        assert "appointment_reminder" in renderer.names


class TestLayout:
    """Test the branded layout."""

    def test_branding_in_header_and_footer(self, renderer, branding):
        html = renderer.render("payment_received", {"invoice": invoice()}, branding).value.html
        assert "<h1>Calm Waters Therapy</h1>" in html
        assert "Powered by PracticeFlow" in html
        assert "This is a secure, encrypted communication from Calm Waters Therapy" in html

    def test_missing_contact_lines_omitted(self, renderer, branding):
        html = renderer.render("payment_received", {"invoice": invoice()}, branding).value.html
        assert "Phone: 555-0100" in html
        assert "Email: hello@calmwaters.test" in html
        assert "Website:" not in html

    def test_no_contact_block_without_contact_details(self, renderer):
        html = renderer.render("payment_received", {"invoice": invoice()}).value.html
        assert "Contact Information" not in html
        assert "<h1>Your Practice</h1>" in html

    def test_client_values_are_escaped(self, renderer):
        data = {"invoice": invoice(client_name="<script>x</script>")}
        html = renderer.render("payment_received", data).value.html
        assert "<script>x</script>" not in html
        assert "&lt;script&gt;" in html


class TestTemplates:
    """Test individual templates."""

    def test_payment_received(self, renderer, branding):
        msg = renderer.render("payment_received", {"invoice": invoice()}, branding).value
        assert msg.subject == "Payment Received - Invoice INV-1001"
        assert "$150.00" in msg.body
        assert msg.body.endswith("Best regards,\nCalm Waters Therapy")

    def test_payment_failed_defaults_error(self, renderer):
        msg = renderer.render("payment_failed", {"invoice": invoice()}).value
        assert msg.subject == "Payment Failed - Invoice INV-1001"
        assert "Error: Unknown error" in msg.body

    def test_autopay_failed(self, renderer):
        msg = renderer.render("autopay_failed", {"invoice": invoice(), "error": "Card declined"}).value
        assert msg.subject == "Autopay Failed - Invoice INV-1001"
        assert "automatic payment" in msg.body
        assert "Card declined" in msg.body

    def test_refund_uses_refund_amount(self, renderer):
        msg = renderer.render("refund_processed", {"invoice": invoice(), "refund_amount": "25"}).value
        assert "$25.00" in msg.body
        assert "$150.00" not in msg.body

    def test_invoice_created_requires_due_date(self, renderer):
        ok = renderer.render("invoice_created", {"invoice": invoice()}).value
        assert "Due Date: 4/1/2025" in ok.body

        data = {"invoice": invoice()}
        del data["invoice"]["due_date"]
        assert renderer.render("invoice_created", data).is_err

    def test_autopay_enabled(self, renderer):
        msg = renderer.render("autopay_enabled", {"client": {"name": "Jane"}}).value
        assert msg.subject == "Autopay Enabled"
        assert "Dear Jane" in msg.body

    def _appointment(self, **overrides):
        appt = {
            "client_name": "Jane Doe",
            "appointment_date": "2025-03-20",
            "appointment_time": "2:00 PM",
            "duration": 50,
            "type": "Individual Therapy",
            "modality": "in_person",
        }
        appt.update(overrides)
        return {"appointment": appt}

    def test_in_person_reminder(self, renderer):
        msg = renderer.render("appointment_reminder", self._appointment()).value
        assert msg.subject == "Appointment Reminder - 3/20/2025"
        assert "Please arrive 10 minutes early." in msg.body
        assert "Modality: In-Person" in msg.body

    def test_telehealth_reminder_with_link(self, renderer):
        data = self._appointment(modality="telehealth", telehealth_link="https://video.test/room/1")
        msg = renderer.render("appointment_reminder", data).value
        assert msg.subject.endswith("(Telehealth)")
        assert "https://video.test/room/1" in msg.body
        assert "Please join 5 minutes early to test your connection." in msg.body
        assert "arrive 10 minutes early" not in msg.body

    def test_telehealth_reminder_without_link(self, renderer):
        msg = renderer.render("appointment_reminder", self._appointment(modality="telehealth")).value
        assert "Join your video session" not in msg.body
        assert "arrive 10 minutes early" not in msg.body

    def test_document_assigned_has_code_and_cautions(self, renderer):
        data = {
            "client": {"name": "Jane"},
            "document": {"template_name": "Intake Form", "auth_code": "A1B2C3"},
            "portal_url": "https://portal.test",
        }
        msg = renderer.render("document_assigned", data).value
        assert msg.subject == "New Document to Complete"
        assert "A1B2C3" in msg.body
        assert "A1B2C3" in msg.html
        assert "https://portal.test" in msg.body
        assert "expire in 7 days" in msg.body
        for caution in CAUTIONS:
            assert caution in msg.body

    def test_document_assigned_default_portal(self, renderer):
        from practiceflow.config import settings

        data = {"client": {"name": "Jane"}, "document": {"template_name": "X", "auth_code": "C"}}
        msg = renderer.render("document_assigned", data).value
        assert settings.portal_url in msg.body

    def test_payment_request(self, renderer):
        data = {
            "invoice": invoice(total_amount="80"),
            "description": "Session 3/14",
            "payment_link": "https://pay.test/abc",
        }
        msg = renderer.render("payment_request", data).value
        assert msg.subject == "Invoice #INV-1001 - Payment Request"
        assert "Due by: 4/1/2025" in msg.body
        assert "$80.00" in msg.body
        assert "https://pay.test/abc" in msg.html

    def test_payment_request_due_upon_receipt(self, renderer):
        data = {
            "invoice": invoice(due_date=None),
            "description": "Session",
            "payment_link": "https://pay.test/abc",
        }
        msg = renderer.render("payment_request", data).value
        assert "Due upon receipt" in msg.body

    def test_sms_text_is_subject_and_body(self, renderer):
        msg = renderer.render("autopay_enabled", {"client": {"name": "Jane"}}).value
        assert msg.sms_text() == f"{msg.subject}\n\n{msg.body}"
