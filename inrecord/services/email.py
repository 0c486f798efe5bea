"""Transactional email through Resend.

Booking confirmations, admin notices, status updates and the weekly digest
newsletter are rendered from Jinja2 templates under ``inrecord/templates/email``
and sent with the Resend SDK. Sends never raise; each returns a result dict
with ``success`` and either ``message_id`` or ``error``.
"""

import asyncio
import os
from pathlib import Path
from typing import Any

import resend
import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from inrecord.models.digest import DEFAULT_BASE_URL, DigestDB, digest_url

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

STATUS_MESSAGES = {
    "confirmed": {
        "subject": "Booking Confirmed",
        "message": "Great news! Your studio booking has been confirmed.",
        "color": "#10b981",
    },
    "cancelled": {
        "subject": "Booking Cancelled",
        "message": "Your studio booking has been cancelled.",
        "color": "#ef4444",
    },
    "completed": {
        "subject": "Session Completed",
        "message": "Thank you for your session! We hope it was productive.",
        "color": "#8b5cf6",
    },
}


class EmailConfig:
    """Email settings read from the environment."""

    def __init__(self):
        self.api_key = os.getenv("RESEND_API_KEY", "")
        self.from_email = os.getenv("FROM_EMAIL", "bookings@inrecord.io")
        self.admin_email = os.getenv("ADMIN_EMAIL", "admin@inrecord.io")
        self.base_url = os.getenv("BASE_URL", DEFAULT_BASE_URL).rstrip("/")
        self.subscribers = [
            address.strip() for address in os.getenv("DIGEST_SUBSCRIBERS", "").split(",") if address.strip()
        ]

    def is_configured(self) -> bool:
        return bool(self.api_key and self.from_email)


def long_date(value) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def booking_context(booking) -> dict[str, Any]:
    """Template variables shared by every booking email."""
    return {
        "booking": booking,
        "booking_id_short": f"{str(booking.id)[:8]}...",
        "room_name": booking.room_type.capitalize(),
        "session_date": long_date(booking.session_date),
        "session_time": str(booking.session_time)[:5],
        "total_cost": f"{booking.total_cost or 0:.2f}",
    }


class EmailService:
    """Renders and sends inRECORD emails."""

    def __init__(self, config: EmailConfig | None = None):
        self.config = config or EmailConfig()
        self.template_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    def render_template(self, template_name: str, context: dict[str, Any]) -> str:
        template = self.template_env.get_template(f"{template_name}.html")
        return template.render(base_url=self.config.base_url, admin_email=self.config.admin_email, **context)

    async def send_email(
        self,
        to: str | list[str],
        subject: str,
        html_content: str,
        sender_name: str = "inRECORD Studio",
        tags: list[dict] | None = None,
    ) -> dict[str, Any]:
        """Send one message through Resend."""
        if not self.config.is_configured():
            logger.warning("email_not_configured", subject=subject)
            return {"success": False, "provider": "resend", "error": "Email service not configured"}

        params: dict[str, Any] = {
            "from": f"{sender_name} <{self.config.from_email}>",
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html_content,
        }
        if tags:
            params["tags"] = tags

        resend.api_key = self.config.api_key
        try:
            result = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error("email_send_failed", subject=subject, error=str(e))
            return {"success": False, "provider": "resend", "error": str(e)}

        logger.info("email_sent", subject=subject, recipients=len(params["to"]))
        return {"success": True, "provider": "resend", "message_id": result.get("id")}

    async def send_booking_confirmation(self, booking) -> dict[str, Any]:
        html = self.render_template("booking_confirmation", booking_context(booking))
        return await self.send_email(booking.user_email, "Studio Booking Confirmation - inRECORD", html)

    async def send_admin_notification(self, booking) -> dict[str, Any]:
        html = self.render_template("admin_notification", booking_context(booking))
        return await self.send_email(
            self.config.admin_email,
            f"New Studio Booking: {booking.room_type} - {booking.session_date.isoformat()}",
            html,
            sender_name="inRECORD Bookings",
        )

    async def send_status_update(self, booking, previous_status: str) -> dict[str, Any]:
        """Notify the customer of a status change; other statuses are skipped."""
        status_info = STATUS_MESSAGES.get(booking.status)
        if status_info is None:
            return {"success": True, "skipped": True}

        context = booking_context(booking)
        context.update(status_info=status_info, previous_status=previous_status)
        html = self.render_template("status_update", context)
        return await self.send_email(booking.user_email, f"{status_info['subject']} - inRECORD", html)

    async def send_digest_newsletter(self, digest: DigestDB, recipients: list[str] | None = None) -> dict[str, Any]:
        recipients = recipients if recipients is not None else self.config.subscribers
        if not recipients:
            logger.info("digest_no_subscribers", digest_id=str(digest.id))
            return {"success": True, "skipped": True, "recipient_count": 0}

        week_label = long_date(digest.week_start)
        html = self.render_template(
            "digest_newsletter",
            {
                "digest": digest,
                "week_label": week_label,
                "metrics": digest.key_metrics or {},
                "digest_url": digest_url(digest.week_start, self.config.base_url),
            },
        )
        result = await self.send_email(
            recipients,
            f"📊 Weekly DAO Digest - Week of {week_label}",
            html,
            sender_name="inRECORD DAO",
            tags=[
                {"name": "category", "value": "digest"},
                {"name": "week", "value": digest.week_start.isoformat()},
            ],
        )
        result["recipient_count"] = len(recipients)
        return result
