"""Email service for sending dunning emails via SMTP."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any
from uuid import UUID

from recovery.core.config import settings
from recovery.models.dunning_email_template import EmailTemplateType

if TYPE_CHECKING:
    from recovery.models.dunning_email_template import DunningEmailTemplate

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}")

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}

DUNNING_TEMPLATE_VARIABLES = [
    "customer_name",
    "customer_email",
    "amount",
    "currency",
    "product_name",
    "retry_date",
    "attempts_remaining",
    "payment_link",
    "support_email",
    "merchant_name",
    "unsubscribe_link",
]

DEFAULT_DUNNING_TEMPLATES: dict[str, dict[str, str]] = {
    EmailTemplateType.PRE_DUNNING.value: {
        "subject": "Your {{ product_name }} payment is coming up",
        "body_html": (
            "<p>Hi {{ customer_name }},</p>"
            "<p>Your next payment of {{ amount }} for {{ product_name }} is due soon. "
            "Please make sure your payment details are up to date.</p>"
            "<p><a href=\"{{ payment_link }}\">Review payment details</a></p>"
            "<p>{{ merchant_name }}</p>"
        ),
        "body_text": (
            "Hi {{ customer_name }},\n\nYour next payment of {{ amount }} for "
            "{{ product_name }} is due soon.\n\n{{ payment_link }}\n\n{{ merchant_name }}"
        ),
    },
    EmailTemplateType.ATTEMPT_1.value: {
        "subject": "We couldn't process your payment for {{ product_name }}",
        "body_html": (
            "<p>Hi {{ customer_name }},</p>"
            "<p>We were unable to collect {{ amount }} for {{ product_name }}. "
            "We'll try again on {{ retry_date }}.</p>"
            "<p><a href=\"{{ payment_link }}\">Update payment method</a></p>"
            "<p>Questions? Contact {{ support_email }}.</p>"
            "<p><a href=\"{{ unsubscribe_link }}\">Unsubscribe</a></p>"
        ),
        "body_text": (
            "Hi {{ customer_name }},\n\nWe were unable to collect {{ amount }} for "
            "{{ product_name }}. We'll try again on {{ retry_date }}.\n\n"
            "Update your payment method: {{ payment_link }}\n"
            "Questions? Contact {{ support_email }}."
        ),
    },
    EmailTemplateType.ATTEMPT_2.value: {
        "subject": "Second notice: payment for {{ product_name }} failed",
        "body_html": (
            "<p>Hi {{ customer_name }},</p>"
            "<p>Our second attempt to collect {{ amount }} for {{ product_name }} failed. "
            "{{ attempts_remaining }} attempt(s) remain before your subscription is affected. "
            "Next retry: {{ retry_date }}.</p>"
            "<p><a href=\"{{ payment_link }}\">Update payment method</a></p>"
            "<p>Questions? Contact {{ support_email }}.</p>"
            "<p><a href=\"{{ unsubscribe_link }}\">Unsubscribe</a></p>"
        ),
        "body_text": (
            "Hi {{ customer_name }},\n\nOur second attempt to collect {{ amount }} for "
            "{{ product_name }} failed. {{ attempts_remaining }} attempt(s) remain.\n\n"
            "Update your payment method: {{ payment_link }}"
        ),
    },
    EmailTemplateType.FINAL_NOTICE.value: {
        "subject": "Final notice: action required for {{ product_name }}",
        "body_html": (
            "<p>Hi {{ customer_name }},</p>"
            "<p>This is our final attempt to collect {{ amount }} for {{ product_name }}. "
            "If payment is not received your subscription will be affected.</p>"
            "<p><a href=\"{{ payment_link }}\">Pay now</a></p>"
            "<p>Questions? Contact {{ support_email }}.</p>"
            "<p><a href=\"{{ unsubscribe_link }}\">Unsubscribe</a></p>"
        ),
        "body_text": (
            "Hi {{ customer_name }},\n\nThis is our final attempt to collect {{ amount }} "
            "for {{ product_name }}.\n\nPay now: {{ payment_link }}"
        ),
    },
    EmailTemplateType.RECOVERY_SUCCESS.value: {
        "subject": "Payment received for {{ product_name }}",
        "body_html": (
            "<p>Hi {{ customer_name }},</p>"
            "<p>Thanks! We received your payment of {{ amount }} for {{ product_name }}.</p>"
            "<p>{{ merchant_name }}</p>"
        ),
        "body_text": (
            "Hi {{ customer_name }},\n\nThanks! We received your payment of {{ amount }} "
            "for {{ product_name }}.\n\n{{ merchant_name }}"
        ),
    },
    EmailTemplateType.CANCELLATION.value: {
        "subject": "Your {{ product_name }} subscription has been cancelled",
        "body_html": (
            "<p>Hi {{ customer_name }},</p>"
            "<p>We were unable to collect {{ amount }} for {{ product_name }} after several "
            "attempts, so your subscription has been cancelled.</p>"
            "<p><a href=\"{{ payment_link }}\">Reactivate your subscription</a></p>"
            "<p>Questions? Contact {{ support_email }}.</p>"
            "<p>{{ merchant_name }}</p>"
        ),
        "body_text": (
            "Hi {{ customer_name }},\n\nWe were unable to collect {{ amount }} for "
            "{{ product_name }} after several attempts, so your subscription has been "
            "cancelled.\n\nReactivate: {{ payment_link }}\n"
            "Questions? Contact {{ support_email }}."
        ),
    },
}


def format_amount(amount_cents: int, currency: str) -> str:
    """Format integer cents for display, e.g. 1999 USD -> "$19.99"."""
    value = f"{amount_cents / 100:.2f}"
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{symbol}{value}"
    return f"{value} {currency.upper()}"


def render_template(text: str, context: dict[str, Any]) -> str:
    """Replace ``{{ name }}`` placeholders; unknown names render as empty strings."""

    def _sub(match: re.Match[str]) -> str:
        value = context.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, text)


def build_dunning_context(
    *,
    customer_name: str | None,
    customer_email: str | None,
    amount_cents: int,
    currency: str,
    product_name: str | None = None,
    retry_date: datetime | None = None,
    attempts_remaining: int = 0,
    campaign_id: UUID | None = None,
    customer_id: UUID | None = None,
    support_email: str | None = None,
    merchant_name: str | None = None,
) -> dict[str, Any]:
    """Build the variables available to dunning email templates."""
    payment_link = ""
    if settings.DUNNING_PAYMENT_LINK_BASE_URL and campaign_id is not None:
        payment_link = f"{settings.DUNNING_PAYMENT_LINK_BASE_URL.rstrip('/')}/{campaign_id}"
    unsubscribe_link = ""
    if settings.DUNNING_UNSUBSCRIBE_BASE_URL and customer_id is not None:
        unsubscribe_link = f"{settings.DUNNING_UNSUBSCRIBE_BASE_URL.rstrip('/')}/{customer_id}"

    return {
        "customer_name": customer_name or "Customer",
        "customer_email": customer_email or "",
        "amount": format_amount(amount_cents, currency),
        "currency": currency.upper(),
        "product_name": product_name or "your subscription",
        "retry_date": retry_date.strftime("%B %d, %Y") if retry_date else "",
        "attempts_remaining": max(attempts_remaining, 0),
        "payment_link": payment_link,
        "support_email": support_email or settings.DUNNING_SUPPORT_EMAIL,
        "merchant_name": merchant_name or settings.DUNNING_MERCHANT_NAME,
        "unsubscribe_link": unsubscribe_link,
    }


class EmailService:
    """Service for sending transactional emails via SMTP."""

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        """Send an email via SMTP.

        Args:
            to: Recipient email address.
            subject: Email subject line.
            html_body: HTML content of the email.
            text_body: Optional plain-text alternative.

        Returns:
            True if sent successfully (or no-op when SMTP unconfigured).
        """
        if not settings.SMTP_HOST:
            logger.info("SMTP not configured, skipping email to %s: %s", to, subject)
            return True

        import aiosmtplib

        msg = EmailMessage()
        msg["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text_body or "Please view this email in an HTML-capable client.")
        msg.add_alternative(html_body, subtype="html")

        await aiosmtplib.send(
            msg,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME or None,
            password=settings.SMTP_PASSWORD or None,
            start_tls=settings.SMTP_USE_TLS,
        )
        logger.info("Email sent to %s: %s", to, subject)
        return True

    async def send_dunning_email(
        self,
        template: DunningEmailTemplate | dict[str, str],
        context: dict[str, Any],
        recipient: str,
    ) -> bool:
        """Render a stored or built-in dunning template and send it.

        Transport errors propagate to the caller.
        """
        if isinstance(template, dict):
            subject, body_html, body_text = (
                template["subject"],
                template["body_html"],
                template.get("body_text"),
            )
        else:
            subject = str(template.subject)
            body_html = str(template.body_html)
            body_text = str(template.body_text) if template.body_text else None

        return await self.send_email(
            to=recipient,
            subject=render_template(subject, context),
            html_body=render_template(body_html, context),
            text_body=render_template(body_text, context) if body_text else None,
        )
