# app/services/email_service.py
import smtplib
from email.message import EmailMessage

from app.core.logging_config import get_logger
from app.core.settings import settings
from app.infra.retry import retry_on

log = get_logger(__name__)


def is_transient_smtp_error(e: Exception) -> bool:
    if isinstance(e, (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError)):
        return True
    if isinstance(e, smtplib.SMTPResponseException):
        # 4xx = tijdelijk, 5xx = definitief
        return 400 <= e.smtp_code < 500
    return isinstance(e, (ConnectionError, TimeoutError))


def _deliver(msg: EmailMessage) -> None:
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
        server.starttls()
        if settings.SMTP_USER and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.send_message(msg)


def send_email(to_email: str, subject: str, html_body: str, text_body: str) -> None:
    """
    Send one e-mail. Without ``SMTP_HOST`` the mail is only logged (dev mode).
    Transient SMTP errors are retried briefly; anything else propagates.
    """
    if not to_email:
        log.info("email_skipped_no_recipient", subject=subject)
        return

    # Als er geen SMTP-host staat → alleen loggen (dev mode)
    if not settings.SMTP_HOST:
        log.info("dev_email", to=to_email, subject=subject, body=text_body)
        return

    msg = EmailMessage()
    from_email = settings.SMTP_FROM_EMAIL or settings.SMTP_USER or settings.ADMIN_EMAIL
    msg["Subject"] = subject
    msg["From"] = f"{settings.SMTP_FROM_NAME} <{from_email}>"
    msg["To"] = to_email
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")

    retry_on(
        lambda: _deliver(msg),
        attempts=3,
        base=0.5,
        is_retryable=is_transient_smtp_error,
        op="smtp_send",
    )
    log.info("email_sent", to=to_email, subject=subject)
