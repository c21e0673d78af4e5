"""
Send notification emails via SMTP (Gmail or any STARTTLS provider).
Set SMTP_USER, SMTP_PASSWORD (and optionally NOTIFY_FROM) in .env. Unconfigured SMTP skips sending.
"""
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from butternovel.config import settings
from butternovel.core.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

PREFERENCES_PATH = "/settings/notifications"


def _from_address() -> str:
    if (settings.notify_from or "").strip():
        return settings.notify_from.strip()
    user = (settings.smtp_user or "").strip()
    if user:
        return f"ButterNovel <{user}>"
    return "ButterNovel <noreply@localhost>"


def _absolute_url(link: str | None) -> str:
    base = (settings.public_base_url or "").rstrip("/")
    if not link:
        return base or "/"
    if link.startswith("http://") or link.startswith("https://"):
        return link
    return f"{base}{link if link.startswith('/') else '/' + link}"


def build_notification_email(template_type: str, template_data: dict[str, Any]) -> tuple[str, str, str]:
    """Return (subject, text body, html body) for a notification email."""
    title = (template_data.get("title") or "").strip() or "You have a new notification"
    content = (template_data.get("content") or "").strip()
    url = _absolute_url(template_data.get("link"))
    prefs_url = _absolute_url(PREFERENCES_PATH)

    lines = [title]
    if content:
        lines += ["", content]
    lines += ["", f"View details: {url}", "", f"Manage notification preferences: {prefs_url}"]
    text = "\n".join(lines)

    content_html = f"<p style='color:#444'>{html.escape(content)}</p>" if content else ""
    body_html = (
        "<div style='font-family:sans-serif;max-width:560px'>"
        f"<h2 style='color:#222'>{html.escape(title)}</h2>"
        f"{content_html}"
        f"<p><a href='{html.escape(url, quote=True)}' "
        "style='display:inline-block;padding:10px 18px;background:#f59e0b;color:#fff;"
        "border-radius:6px;text-decoration:none'>View details</a></p>"
        "<hr style='border:none;border-top:1px solid #eee'>"
        f"<p style='font-size:12px;color:#888'>You received this because of your {html.escape(template_type)} "
        f"notification settings. <a href='{html.escape(prefs_url, quote=True)}'>Manage preferences</a></p>"
        "</div>"
    )
    return f"ButterNovel: {title}", text, body_html


def send_notification_email(to_email: str, template_type: str, template_data: dict[str, Any]) -> bool:
    """
    Send one notification email. Returns True if sent, False if skipped (no address or SMTP not configured).
    Raises UpstreamServiceError when the SMTP exchange fails.
    """
    to_email = (to_email or "").strip()
    if not to_email:
        return False
    user = (settings.smtp_user or "").strip()
    password = (settings.smtp_password or "").strip()
    if not user or not password:
        logger.debug("SMTP_USER or SMTP_PASSWORD not set; skipping %s email", template_type)
        return False
    subject, text, body_html = build_notification_email(template_type, template_data)
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_address()
    msg["To"] = to_email
    msg.attach(MIMEText(text, "plain"))
    msg.attach(MIMEText(body_html, "html"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            server.starttls()
            server.login(user, password)
            server.sendmail(user, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        raise UpstreamServiceError(f"SMTP send failed: {e.__class__.__name__}") from e
    logger.info("Email sent to %s (%s)", to_email, template_type)
    return True
