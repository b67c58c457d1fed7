import httpx
from flask import current_app, render_template
from sqlalchemy.exc import SQLAlchemyError

from ..models import EmailLog, db

BREVO_URL = "https://api.brevo.com/v3/smtp/email"
RESEND_URL = "https://api.resend.com/emails"


def _provider_request(provider, api_key, *, sender, sender_name, recipient, subject, html_body, text_body):
    if provider == "resend":
        return (
            RESEND_URL,
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            {
                "from": f"{sender_name} <{sender}>",
                "to": [recipient],
                "subject": subject,
                "html": html_body,
                "text": text_body,
            },
        )
    return (
        BREVO_URL,
        {
            "api-key": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        {
            "sender": {"name": sender_name, "email": sender},
            "to": [{"email": recipient}],
            "subject": subject,
            "htmlContent": html_body,
            "textContent": text_body,
        },
    )


def _api_key(provider):
    if provider == "resend":
        return current_app.config.get("RESEND_API_KEY")
    return current_app.config.get("BREVO_API_KEY")


def send_email(to, subject, message, type=None, user_id=None, book_id=None):
    """Send a plain-text message wrapped in the library's HTML layout.

    Returns True only when the provider accepted the message. A missing API
    key counts as a failure so callers never mark an unsent notification as
    emailed.
    """
    provider = current_app.config.get("EMAIL_PROVIDER", "brevo")
    api_key = _api_key(provider)
    if not api_key:
        current_app.logger.debug("Email skipped (%s API key not configured): %s", provider, subject)
        _log_attempt(to, subject, type, user_id, book_id, provider, "skipped", "API key not configured")
        return False

    html_body = render_template(
        "email/base.html",
        subject=subject,
        lines=message.splitlines(),
        library_name=current_app.config["LIBRARY_NAME"],
    )
    url, headers, payload = _provider_request(
        provider,
        api_key,
        sender=current_app.config.get("MAIL_DEFAULT_SENDER"),
        sender_name=current_app.config.get("MAIL_DEFAULT_SENDER_NAME"),
        recipient=to,
        subject=subject,
        html_body=html_body,
        text_body=message,
    )
    try:
        resp = httpx.post(
            url,
            headers=headers,
            json=payload,
            timeout=current_app.config.get("EMAIL_TIMEOUT_SECONDS", 15),
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        current_app.logger.error(f"Failed to send email to {to}: {e}")
        _log_attempt(to, subject, type, user_id, book_id, provider, "failed", str(e))
        return False

    current_app.logger.info("Email sent via %s to %s: %s", provider, to, subject)
    _log_attempt(to, subject, type, user_id, book_id, provider, "sent")
    return True


def _log_attempt(recipient, subject, type, member_id, book_id, provider, status, error=None):
    try:
        db.session.add(
            EmailLog(
                recipient=recipient,
                subject=subject[:500],
                type=type,
                member_id=member_id,
                book_id=book_id,
                provider=provider,
                status=status,
                error=error,
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not record email log entry for %s", recipient, exc_info=True)
