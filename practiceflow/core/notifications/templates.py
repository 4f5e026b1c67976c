"""
Template Renderer

Maps a template name + payload + practice branding to a subject, a
plain-text body and a branded HTML body.

Rendering never raises: an unknown template or a payload missing required
fields comes back as Err(TemplateError).

Payload shapes:
    payment_received / payment_failed / autopay_failed / invoice_created:
        {"invoice": {"invoice_number", "client_name", "total_amount", "due_date"?},
         "error"?}
    refund_processed:   {"invoice": {...}, "refund_amount"}
    autopay_enabled:    {"client": {"name"}}
    appointment_reminder:
        {"appointment": {"client_name", "appointment_date", "appointment_time",
                         "duration", "type", "modality", "telehealth_link"?}}
    document_assigned:  {"client": {"name"}, "document": {"template_name", "auth_code"},
                         "portal_url"?}
    payment_request:    {"invoice": {...}, "description", "payment_link"}
"""

import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from html import escape
from typing import Any, Callable, Optional

from practiceflow.config import settings
from practiceflow.core.result import Err, Ok, Result

from .types import PracticeBranding, RenderedMessage, TemplateError

logger = logging.getLogger(__name__)

TemplateFn = Callable[[dict[str, Any], PracticeBranding], RenderedMessage]


# === Formatting helpers ===

def format_currency(value: Any) -> str:
    """Render an amount with exactly two decimals (no currency symbol)."""
    amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{amount:.2f}"


def format_date(value: Any) -> str:
    """Render a date as M/D/YYYY."""
    if isinstance(value, datetime):
        value = value.date()
    elif isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    if not isinstance(value, date):
        raise ValueError(f"Not a date: {value!r}")
    return f"{value.month}/{value.day}/{value.year}"


def _e(value: Any) -> str:
    return escape(str(value), quote=True)


def _closing(branding: PracticeBranding) -> str:
    return f"Best regards,\n{branding.display_name}"


def _html_closing(branding: PracticeBranding) -> str:
    return f"<p>Best regards,<br>{_e(branding.display_name)}</p>"


def _info_block(title: str, lines: list[str], style: str = "") -> str:
    style_attr = f' style="{style}"' if style else ""
    body = "<br>\n".join(lines)
    return (
        f'<div class="info-block"{style_attr}>\n'
        f"<strong>{title}</strong><br>\n{body}\n</div>"
    )


# === Branded layout ===

_LAYOUT_STYLE = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;
       line-height: 1.6; color: #333; margin: 0; padding: 0; background-color: #f5f5f5; }
.container { max-width: 600px; margin: 0 auto; background-color: #ffffff; }
.header { background-color: #2c3e50; color: #ffffff; padding: 30px 20px; text-align: center; }
.header h1 { margin: 0; font-size: 24px; font-weight: 600; }
.content { padding: 40px 30px; }
.content p { margin: 0 0 15px 0; }
.info-block { background-color: #f8f9fa; border-left: 4px solid #2c3e50; padding: 15px; margin: 20px 0; }
.contact-info { margin-top: 30px; padding-top: 20px; border-top: 1px solid #e0e0e0;
                font-size: 14px; color: #666; }
.footer { background-color: #f8f9fa; padding: 20px; text-align: center; font-size: 12px;
          color: #999; border-top: 1px solid #e0e0e0; }
""".strip()


def render_layout(content: str, branding: PracticeBranding) -> str:
    """
    Wrap body HTML in the shared branded layout.

    Contact lines for missing phone/email/website are omitted entirely.
    """
    name = _e(branding.display_name)

    contact_lines = []
    if branding.practice_phone:
        contact_lines.append(f"Phone: {_e(branding.practice_phone)}")
    if branding.practice_email:
        contact_lines.append(f"Email: {_e(branding.practice_email)}")
    if branding.practice_website:
        contact_lines.append(f"Website: {_e(branding.practice_website)}")

    contact_html = ""
    if contact_lines:
        contact_html = (
            '<div class="contact-info">\n'
            "<strong>Contact Information:</strong><br>\n"
            + "<br>\n".join(contact_lines)
            + "\n</div>"
        )

    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>
{_LAYOUT_STYLE}
</style>
</head>
<body>
<div class="container">
<div class="header"><h1>{name}</h1></div>
<div class="content">
{content}
{contact_html}
</div>
<div class="footer">
<p>Powered by {_e(settings.platform_name)}</p>
<p>This is a secure, encrypted communication from {name}</p>
</div>
</div>
</body>
</html>"""


# === Templates ===

def payment_received(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    invoice = data["invoice"]
    number = invoice["invoice_number"]
    name = invoice["client_name"]
    amount = format_currency(invoice["total_amount"])

    body = (
        f"Dear {name},\n\n"
        f"We have received your payment of ${amount} for invoice {number}.\n\n"
        "Thank you for your payment!\n\n"
        "If you have any questions, please don't hesitate to contact us.\n\n"
        f"{_closing(branding)}"
    )
    html = "\n".join([
        f"<p>Dear {_e(name)},</p>",
        f"<p>We have received your payment of <strong>${amount}</strong> "
        f"for invoice {_e(number)}.</p>",
        _info_block("Payment Confirmed", [f"Invoice: {_e(number)}", f"Amount: ${amount}"]),
        "<p>Thank you for your payment!</p>",
        "<p>If you have any questions, please don't hesitate to contact us.</p>",
        _html_closing(branding),
    ])
    return RenderedMessage(
        subject=f"Payment Received - Invoice {number}",
        body=body,
        html=render_layout(html, branding),
    )


def _payment_problem(
    data: dict[str, Any],
    branding: PracticeBranding,
    title: str,
    what: str,
) -> RenderedMessage:
    invoice = data["invoice"]
    number = invoice["invoice_number"]
    name = invoice["client_name"]
    error = data.get("error") or "Unknown error"

    body = (
        f"Dear {name},\n\n"
        f"We were unable to process your {what} for invoice {number}.\n"
        f"Error: {error}\n\n"
        "Please update your payment method or contact us to resolve this issue.\n\n"
        f"{_closing(branding)}"
    )
    html = "\n".join([
        f"<p>Dear {_e(name)},</p>",
        f"<p>We were unable to process your {what} for invoice {_e(number)}.</p>",
        _info_block(title, [f"Invoice: {_e(number)}", f"Error: {_e(error)}"]),
        "<p>Please update your payment method or contact us to resolve this issue.</p>",
        _html_closing(branding),
    ])
    return RenderedMessage(
        subject=f"{title} - Invoice {number}",
        body=body,
        html=render_layout(html, branding),
    )


def payment_failed(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    return _payment_problem(data, branding, "Payment Failed", "payment")


def autopay_failed(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    return _payment_problem(data, branding, "Autopay Failed", "automatic payment")


def refund_processed(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    invoice = data["invoice"]
    number = invoice["invoice_number"]
    name = invoice["client_name"]
    refund = format_currency(data["refund_amount"])

    body = (
        f"Dear {name},\n\n"
        f"A refund of ${refund} has been processed for invoice {number}.\n\n"
        "The refund will appear on your account within 5-10 business days.\n\n"
        "If you have any questions, please contact us.\n\n"
        f"{_closing(branding)}"
    )
    html = "\n".join([
        f"<p>Dear {_e(name)},</p>",
        f"<p>A refund has been processed for invoice {_e(number)}.</p>",
        _info_block("Refund Processed", [f"Invoice: {_e(number)}", f"Refund Amount: ${refund}"]),
        "<p>The refund will appear on your account within 5-10 business days.</p>",
        "<p>If you have any questions, please contact us.</p>",
        _html_closing(branding),
    ])
    return RenderedMessage(
        subject=f"Refund Processed - Invoice {number}",
        body=body,
        html=render_layout(html, branding),
    )


def invoice_created(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    invoice = data["invoice"]
    number = invoice["invoice_number"]
    name = invoice["client_name"]
    amount = format_currency(invoice["total_amount"])
    due = format_date(invoice["due_date"])

    body = (
        f"Dear {name},\n\n"
        "A new invoice has been created for you:\n\n"
        f"Invoice Number: {number}\n"
        f"Amount: ${amount}\n"
        f"Due Date: {due}\n\n"
        "Please log in to view and pay your invoice.\n\n"
        f"{_closing(branding)}"
    )
    html = "\n".join([
        f"<p>Dear {_e(name)},</p>",
        "<p>A new invoice has been created for you:</p>",
        _info_block("Invoice Details", [
            f"Invoice Number: {_e(number)}",
            f"Amount: ${amount}",
            f"Due Date: {due}",
        ]),
        "<p>Please log in to view and pay your invoice.</p>",
        _html_closing(branding),
    ])
    return RenderedMessage(
        subject=f"New Invoice - {number}",
        body=body,
        html=render_layout(html, branding),
    )


def autopay_enabled(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    name = data["client"]["name"]

    body = (
        f"Dear {name},\n\n"
        "Autopay has been enabled for your account. Future invoices will be "
        "automatically charged to your default payment method.\n\n"
        "You can manage your autopay settings at any time by logging into your account.\n\n"
        f"{_closing(branding)}"
    )
    html = "\n".join([
        f"<p>Dear {_e(name)},</p>",
        "<p>Autopay has been enabled for your account.</p>",
        _info_block("Autopay Enabled", [
            "Future invoices will be automatically charged to your default payment method.",
        ]),
        "<p>You can manage your autopay settings at any time by logging into your account.</p>",
        _html_closing(branding),
    ])
    return RenderedMessage(
        subject="Autopay Enabled",
        body=body,
        html=render_layout(html, branding),
    )


def appointment_reminder(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    appt = data["appointment"]
    name = appt["client_name"]
    when = format_date(appt["appointment_date"])
    at = appt["appointment_time"]
    duration = appt["duration"]
    kind = appt["type"]
    telehealth = appt.get("modality") == "telehealth"
    link = appt.get("telehealth_link") if telehealth else None
    modality = "Telehealth (Video)" if telehealth else "In-Person"

    body_lines = [
        f"Dear {name},",
        "",
        "This is a reminder that you have an appointment scheduled for:",
        "",
        f"Date: {when}",
        f"Time: {at}",
        f"Duration: {duration} minutes",
        f"Type: {kind}",
        f"Modality: {modality}",
    ]
    html_parts = [
        f"<p>Dear {_e(name)},</p>",
        "<p>This is a reminder that you have an appointment scheduled for:</p>",
        _info_block("Appointment Details", [
            f"Date: {when}",
            f"Time: {_e(at)}",
            f"Duration: {_e(duration)} minutes",
            f"Type: {_e(kind)}",
            f"Modality: {'<strong>Telehealth (Video)</strong>' if telehealth else 'In-Person'}",
        ]),
    ]

    if telehealth and link:
        body_lines += [
            "",
            "Join your video session here:",
            link,
            "",
            "Please join 5 minutes early to test your connection.",
        ]
        html_parts += [
            _info_block(
                "Join Video Session",
                [f'<a href="{_e(link)}" style="color: #2c3e50; font-weight: bold;">{_e(link)}</a>'],
                style="background-color: #e8f5e9; border-left-color: #4caf50;",
            ),
            "<p><strong>Please join 5 minutes early to test your connection.</strong></p>",
        ]
    elif not telehealth:
        body_lines += ["", "Please arrive 10 minutes early."]
        html_parts.append("<p>Please arrive 10 minutes early.</p>")

    body_lines += ["", _closing(branding)]
    html_parts.append(_html_closing(branding))

    return RenderedMessage(
        subject=f"Appointment Reminder - {when}{' (Telehealth)' if telehealth else ''}",
        body="\n".join(body_lines),
        html=render_layout("\n".join(html_parts), branding),
    )


CAUTIONS = [
    "Do not share this code with anyone",
    "Access the portal only from a secure device",
    "Contact us if you did not request this document",
]


def document_assigned(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    name = data["client"]["name"]
    document = data["document"]
    doc_name = document["template_name"]
    code = document["auth_code"]
    portal = data.get("portal_url") or settings.portal_url

    body = (
        f"Dear {name},\n\n"
        f"A new document has been assigned to you: {doc_name}\n\n"
        "To complete this document securely, please visit:\n"
        f"{portal}\n\n"
        f"Your secure access code: {code}\n\n"
        "This code will expire in 7 days for security purposes.\n\n"
        "For your protection:\n"
        + "\n".join(f"- {c}" for c in CAUTIONS)
        + f"\n\n{_closing(branding)}"
    )
    html = "\n".join([
        f"<p>Dear {_e(name)},</p>",
        f"<p>A new document has been assigned to you: <strong>{_e(doc_name)}</strong></p>",
        _info_block("Secure Access Information", [
            f'Portal: <a href="{_e(portal)}">{_e(portal)}</a>',
            f"Access Code: <strong>{_e(code)}</strong>",
            "Expires: 7 days",
        ]),
        "<p><strong>For your protection:</strong></p>",
        "<ul>\n" + "\n".join(f"<li>{c}</li>" for c in CAUTIONS) + "\n</ul>",
        _html_closing(branding),
    ])
    return RenderedMessage(
        subject="New Document to Complete",
        body=body,
        html=render_layout(html, branding),
    )


def payment_request(data: dict[str, Any], branding: PracticeBranding) -> RenderedMessage:
    invoice = data["invoice"]
    number = invoice["invoice_number"]
    name = invoice["client_name"]
    amount = format_currency(invoice["total_amount"])
    description = data["description"]
    link = data["payment_link"]
    due_date = invoice.get("due_date")
    due_text = f"Due by: {format_date(due_date)}" if due_date else "Due upon receipt"

    body = (
        f"Dear {name},\n\n"
        "You have a new invoice that requires payment.\n\n"
        f"Invoice #{number}\n"
        f"{description}\n"
        f"{due_text}\n"
        f"Amount: ${amount}\n\n"
        f"Pay securely here: {link}\n\n"
        f"{_closing(branding)}"
    )
    html = "\n".join([
        f"<p>Dear {_e(name)},</p>",
        "<p>You have a new invoice that requires payment.</p>",
        _info_block(f"Invoice #{_e(number)}", [
            _e(description),
            due_text,
            f"Amount: <strong>${amount}</strong>",
        ]),
        "<p>Click the link below to securely pay your invoice:</p>",
        f'<p><a href="{_e(link)}">Pay Invoice</a></p>',
        "<p>All transactions are securely processed through Stripe.</p>",
        _html_closing(branding),
    ])
    return RenderedMessage(
        subject=f"Invoice #{number} - Payment Request",
        body=body,
        html=render_layout(html, branding),
    )


TEMPLATES: dict[str, TemplateFn] = {
    "payment_received": payment_received,
    "payment_failed": payment_failed,
    "refund_processed": refund_processed,
    "invoice_created": invoice_created,
    "autopay_enabled": autopay_enabled,
    "autopay_failed": autopay_failed,
    "appointment_reminder": appointment_reminder,
    "document_assigned": document_assigned,
    "payment_request": payment_request,
}


class TemplateRenderer:
    """
    Renders named notification templates.

    Usage:
        renderer = get_template_renderer()
        result = renderer.render("appointment_reminder", data, branding)
    """

    def __init__(self, templates: Optional[dict[str, TemplateFn]] = None):
        self.templates = dict(templates or TEMPLATES)

    @property
    def names(self) -> list[str]:
        return sorted(self.templates)

    def render(
        self,
        name: str,
        data: dict[str, Any],
        branding: Optional[PracticeBranding] = None,
    ) -> Result[RenderedMessage, TemplateError]:
        """
        Render a template.

        Args:
            name: Template name
            data: Template payload
            branding: Practice branding (defaults to empty branding)

        Returns:
            Ok(RenderedMessage) or Err(TemplateError)
        """
        template = self.templates.get(name)
        if template is None:
            logger.warning(f"Unknown notification template: {name}")
            return Err(TemplateError("template_not_found", f'Template "{name}" not found'))

        try:
            return Ok(template(data or {}, branding or PracticeBranding()))
        except KeyError as e:
            logger.warning(f"Template {name} missing field {e}")
            return Err(TemplateError("invalid_payload", f"Missing template field: {e.args[0]}"))
        except (TypeError, ValueError, ArithmeticError) as e:
            logger.warning(f"Template {name} got invalid payload: {e}")
            return Err(TemplateError("invalid_payload", f"Invalid template data: {e}"))


_renderer: Optional[TemplateRenderer] = None


def get_template_renderer() -> TemplateRenderer:
    """Get template renderer singleton."""
    global _renderer
    if _renderer is None:
        _renderer = TemplateRenderer()
    return _renderer
