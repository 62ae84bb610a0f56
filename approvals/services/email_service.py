"""
Request Approval Workflow
Email Service.

Provides email sending with template support.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Configuration (env vars, see config.py):
    MAIL_SERVER          SMTP host (default: None → log-only mode)
    MAIL_PORT            SMTP port (default: 587)
    MAIL_USE_TLS         Use TLS (default: true)
    MAIL_USERNAME        SMTP username
    MAIL_PASSWORD        SMTP password
    MAIL_DEFAULT_SENDER  From address
    MAIL_SENDER_NAME     From display name
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app
from markupsafe import escape

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_REQUEST_CARD = """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: #4338ca; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
                <h2 style="margin: 0; font-size: 18px;">{heading}</h2>
            </div>
            <div style="background: #f9fafb; padding: 24px; border: 1px solid #e5e7eb; border-top: none;">
                <p style="color: #374151;">Hello <strong>{recipient_name}</strong>,</p>
                <p style="color: #374151;">A request has been {action_text} to you and needs your attention.</p>
                <div style="border-left: 4px solid {urgency_color}; padding: 12px 16px; background: #ffffff;">
                    <h3 style="margin: 0 0 8px; color: #111827;">{title}</h3>
                    <p style="margin: 0 0 8px; font-size: 12px; color: #4338ca; text-transform: uppercase;">
                        {type} &middot; urgency: {urgency}
                    </p>
                    <p style="color: #374151; line-height: 1.6;">{description}</p>
                    <p style="font-size: 13px; color: #6b7280;">
                        {created_by_label}: <strong>{created_by_name}</strong> ({created_by_email})
                    </p>
                    {forwarded_by_block}
                </div>
                <p style="text-align: center; margin-top: 24px;">
                    <a href="{request_url}" style="background: #4338ca; color: #ffffff; padding: 12px 28px;
                       border-radius: 6px; text-decoration: none;">View request #{request_id}</a>
                </p>
            </div>
            <div style="background: #f3f4f6; padding: 12px 24px; border-radius: 0 0 8px 8px;
                        border: 1px solid #e5e7eb; border-top: none; text-align: center;">
                <p style="color: #9ca3af; font-size: 12px; margin: 0;">
                    Automated message from the request approval system. Please do not reply.
                </p>
            </div>
        </div>
        """

_TEMPLATES: dict[str, dict[str, str]] = {
    "request_assigned": {
        "subject": "New request assigned: {title}",
        "html": _REQUEST_CARD,
    },
    "request_forwarded": {
        "subject": "Request forwarded to you: {title}",
        "html": _REQUEST_CARD,
    },
    "account_confirmation": {
        "subject": "Confirm your account",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #111827;">Welcome, {name}</h2>
            <p style="color: #374151;">Confirm your email address to activate your account:</p>
            <p><a href="{confirmation_url}">{confirmation_url}</a></p>
        </div>
        """,
    },
}

URGENCY_COLORS = {
    "low": "#10b981",
    "medium": "#f59e0b",
    "high": "#ef4444",
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        """Get an email template by name."""
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
    ) -> bool:
        """
        Send an email.

        Returns True when the message was delivered (or logged in dev mode),
        False when SMTP delivery failed. Never raises.
        """
        if not cls.is_configured():
            # Dev/test mode: log only
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return True

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name,
                           subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc)
            return False

        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return True

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
    ) -> bool:
        """
        Send an email using a named template.

        Template variables are HTML-escaped and interpolated from the context dict.
        """
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return False

        safe = _SafeDict({k: escape(v) if isinstance(v, str) else v for k, v in context.items()})
        subject = template["subject"].format_map(_SafeDict(context))
        html_body = template["html"].format_map(safe)

        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            template_name=template_name,
        )

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"no-reply@{server}")
        sender_name = cfg.get("MAIL_SENDER_NAME")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{sender_name} <{sender}>" if sender_name else sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
