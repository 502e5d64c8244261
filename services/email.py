import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import send_email_task

logger = logging.getLogger(__name__)

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Queue the email on Celery, sending it inline if the broker is unavailable.
    Returns immediately when the task is queued.
    """
    try:
        send_email_task.delay(to_email, subject, body)
        logger.debug("Email task queued for %s", to_email)
        return
    except Exception as e:
        logger.warning("Celery not available, sending email directly: %s", e)

    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send email via existing send_email path."""
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def order_confirmation_context(order) -> Dict[str, Any]:
    address = order.shipping_address or {}
    return {
        "order_id": order.id,
        "currency": order.currency,
        "subtotal": float(order.subtotal),
        "shipping_cost": float(order.shipping_cost),
        "total": float(order.total),
        "items": [
            {
                "product_name": item.product_name,
                "size": (item.variant_details or {}).get("size"),
                "color": (item.variant_details or {}).get("color"),
                "quantity": item.quantity,
                "total_price": float(item.total_price),
            }
            for item in order.items
        ],
        **address,
    }


def send_order_confirmation(order) -> None:
    send_templated_email(
        order.email,
        f"Order {order.id} confirmed",
        "emails/order_confirmation.txt",
        order_confirmation_context(order),
    )


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    """Direct email sending fallback"""
    if not settings.SMTP_PASSWORD:
        logger.info("SMTP not configured, skipping email to %s (subject: %s)", to_email, subject)
        return

    try:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
        msg["To"] = to_email
        msg.set_content(body)

        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
            server.starttls()
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)

        logger.info("Email sent to %s", to_email)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email sending to %s failed: %s", to_email, e)
