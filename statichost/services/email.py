"""Transactional e-mail over SMTP with fastapi-mail and inline HTML templates."""

import html
from typing import Any

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType
from loguru import logger
from pydantic import EmailStr

from statichost.core.config import get_settings
from statichost.utils.tracking import embed_snippet
from statichost.utils.validation import mask_email


EMAIL_TEMPLATES = {
    "verify_email": {
        "subject": "Verify your email - {app_name}",
        "body": """
            <html><body>
            <h2>Welcome to {app_name}!</h2>
            <p>Hi {name},</p>
            <p>Thanks for signing up. Please confirm your email address to start deploying sites.</p>
            <p><a href="{verification_url}">Verify Email Address</a></p>
            <p>This link expires in {expire_hours} hours.</p>
            <p>If you did not create an account, you can ignore this email.</p>
            </body></html>
        """,
    },
    "site_activated": {
        "subject": "Your site {site_name} is live - {app_name}",
        "body": """
            <html><body>
            <h2>Your site is live</h2>
            <p>Hi {name},</p>
            <p>Your site "{site_name}" has been deployed and is now available at:</p>
            <p><a href="{site_url}">{site_url}</a></p>
            <h3>Analytics tracking</h3>
            <p>To count visitors, add this script to the pages of your site:</p>
            <pre>{tracking_snippet}</pre>
            <p><a href="{dashboard_url}">Open dashboard</a></p>
            </body></html>
        """,
    },
    "admin_new_site": {
        "subject": "New site created: {site_name}",
        "body": """
            <html><body>
            <h2>New site created</h2>
            <p><strong>Site:</strong> {site_name} ({site_slug})</p>
            <p><strong>Owner:</strong> {owner_name} &lt;{owner_email}&gt;</p>
            <p><a href="{admin_url}">Review in the admin console</a></p>
            </body></html>
        """,
    },
    "quota_warning": {
        "subject": "You are approaching your {quota_type} limit - {app_name}",
        "body": """
            <html><body>
            <h2>Quota Warning</h2>
            <p>Hi {name},</p>
            <p>Your {app_name} account is at {usage_percent}% of its {quota_type} limit.</p>
            <p><a href="{dashboard_url}">Manage your sites</a></p>
            </body></html>
        """,
    },
    "test_configuration": {
        "subject": "{app_name} email configuration test",
        "body": """
            <html><body>
            <h2>Email configuration works</h2>
            <p>This message was sent from the {app_name} admin console.</p>
            </body></html>
        """,
    },
}

# Percentage of a quota at which the owner is warned
QUOTA_WARNING_THRESHOLD = 80


def email_configured() -> bool:
    settings = get_settings()
    return bool(settings.SMTP_USER and settings.SMTP_PASSWORD and settings.SMTP_FROM_EMAIL)


def get_email_config() -> ConnectionConfig:
    """
    Create and return email configuration for FastMail.

    Returns:
        ConnectionConfig: Configuration object for SMTP sending.

    Raises:
        ValueError: If required email settings are not configured.
    """
    settings = get_settings()

    if not settings.SMTP_USER:
        raise ValueError("SMTP_USER is required for email functionality")
    if not settings.SMTP_PASSWORD:
        raise ValueError("SMTP_PASSWORD is required for email functionality")
    if not settings.SMTP_FROM_EMAIL:
        raise ValueError("SMTP_FROM_EMAIL is required for email functionality")

    return ConnectionConfig(
        MAIL_USERNAME=settings.SMTP_USER,
        MAIL_PASSWORD=settings.SMTP_PASSWORD,
        MAIL_FROM=settings.SMTP_FROM_EMAIL,
        MAIL_FROM_NAME=settings.SMTP_FROM_NAME,
        MAIL_PORT=settings.SMTP_PORT,
        MAIL_SERVER=settings.SMTP_HOST,
        MAIL_STARTTLS=True,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=True,
        VALIDATE_CERTS=True,
    )


async def send_notification_email(
    template_name: str, recipients: str | list[str], context: dict[str, Any]
) -> None:
    """
    Send notification email using a template.

    Args:
        template_name: Name of the template from EMAIL_TEMPLATES
        recipients: Address or addresses to send to
        context: Variables to format into the template; `app_name` is filled in automatically.
            Values are HTML-escaped in the body.

    Raises:
        ValueError: If template_name doesn't exist or email config is invalid
        Exception: If email sending fails
    """
    if template_name not in EMAIL_TEMPLATES:
        raise ValueError(f"Unknown email template: {template_name}")

    template = EMAIL_TEMPLATES[template_name]
    context = {"app_name": get_settings().APP_NAME, **context}
    if isinstance(recipients, str):
        recipients = [recipients]

    message = MessageSchema(
        subject=template["subject"].format(**context),
        recipients=recipients,
        body=template["body"].format(**{key: html.escape(str(value)) for key, value in context.items()}),
        subtype=MessageType.html,
    )

    fm = FastMail(get_email_config())
    await fm.send_message(message)


async def send_safely(
    template_name: str, recipients: str | list[str], context: dict[str, Any]
) -> bool:
    """
    Send a templated e-mail without ever failing the calling request.

    Missing SMTP configuration is logged as a warning and errors while sending are
    logged with the recipient masked.

    Returns:
        bool: True if the message was handed to the SMTP server.
    """
    targets = [recipients] if isinstance(recipients, str) else recipients
    if not targets:
        return False
    if not email_configured():
        logger.warning(f"Email not configured, skipping '{template_name}' email")
        return False
    try:
        await send_notification_email(template_name, targets, context)
        logger.info(
            f"Sent '{template_name}' email to {', '.join(mask_email(t) for t in targets)}"
        )
        return True
    except Exception as e:
        logger.error(
            f"Failed to send '{template_name}' email to {', '.join(mask_email(t) for t in targets)}: {e}"
        )
        return False


async def send_verification_email(email: EmailStr, name: str, token: str) -> bool:
    settings = get_settings()
    return await send_safely(
        "verify_email",
        email,
        {
            "name": name,
            "verification_url": f"{settings.APP_URL}/auth/verify-email?token={token}",
            "expire_hours": settings.EMAIL_VERIFICATION_EXPIRE_HOURS,
        },
    )


async def send_site_activated_email(
    email: EmailStr, name: str, site_id: int, site_name: str, site_url: str
) -> bool:
    return await send_safely(
        "site_activated",
        email,
        {
            "name": name,
            "site_name": site_name,
            "site_url": site_url,
            "tracking_snippet": embed_snippet(site_id),
            "dashboard_url": f"{get_settings().APP_URL}/dashboard",
        },
    )


async def send_admin_new_site_email(
    site_name: str, site_slug: str, owner_name: str, owner_email: str
) -> bool:
    settings = get_settings()
    return await send_safely(
        "admin_new_site",
        settings.admin_emails,
        {
            "site_name": site_name,
            "site_slug": site_slug,
            "owner_name": owner_name,
            "owner_email": owner_email,
            "admin_url": f"{settings.APP_URL}/admin/sites",
        },
    )


async def send_quota_warning_email(
    email: EmailStr, name: str, quota_type: str, usage_percent: int
) -> bool:
    return await send_safely(
        "quota_warning",
        email,
        {
            "name": name,
            "quota_type": quota_type,
            "usage_percent": usage_percent,
            "dashboard_url": f"{get_settings().APP_URL}/dashboard",
        },
    )


async def send_test_email(recipient: EmailStr) -> bool:
    return await send_safely("test_configuration", recipient, {})
