"""
Email service using fastapi-mail over SMTP, fronted by a durable outbox.

Flow:
  1. queue_email() renders the message and adds an EmailOutbox row to the
     caller's session. It is committed together with the OTP it announces.
  2. The router schedules deliver_email() with FastAPI BackgroundTasks, so the
     HTTP response goes out before SMTP is touched.
  3. deliver_email() retries with exponential backoff and records every
     attempt on the row. Failures are logged, never raised to the client.
  4. deliver_pending_emails() picks up rows left pending (e.g. after a crash)
     and is run once at application startup.

Gmail setup: use an App Password as MAIL_PASSWORD, not the account password.
Port 587 → MAIL_STARTTLS=True, MAIL_SSL_TLS=False.
"""
import asyncio
import logging
from typing import Optional

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType
from aiosmtplib.errors import SMTPException, SMTPRecipientsRefused, SMTPResponseException
from fastapi_mail.errors import ConnectionErrors
from sqlalchemy.orm import Session, sessionmaker

from app.config import settings
from app.database import SessionLocal, utcnow
from app.models.email_outbox import EmailOutbox, STATUS_PENDING, STATUS_SENT, STATUS_FAILED

logger = logging.getLogger(__name__)

# Build connection config once at module level — don't rebuild on every request
mail_config = ConnectionConfig(
    MAIL_USERNAME=settings.mail_username,
    MAIL_PASSWORD=settings.mail_password,
    MAIL_FROM=settings.mail_from,
    MAIL_FROM_NAME=settings.mail_from_name,
    MAIL_PORT=settings.mail_port,
    MAIL_SERVER=settings.mail_server,
    MAIL_STARTTLS=True,
    MAIL_SSL_TLS=False,
    USE_CREDENTIALS=True,
    VALIDATE_CERTS=True,
    SUPPRESS_SEND=1 if settings.mail_suppress_send else 0,
)

fast_mail = FastMail(mail_config)

TEMPLATE_VERIFICATION = "verification"
TEMPLATE_PASSWORD_RESET = "password_reset"

_SUBJECTS = {
    TEMPLATE_VERIFICATION: "Verify Your Email Address",
    TEMPLATE_PASSWORD_RESET: "Reset Your Password",
}

_OTP_BLOCK = (
    '<div style="background: #f8f9fa; padding: 20px; text-align: center; '
    'margin: 20px 0; font-size: 24px; font-weight: bold;">{otp}</div>'
)


def _render(template: str, otp: str) -> str:
    if template == TEMPLATE_VERIFICATION:
        heading = "Email Verification"
        intro = "Please use the following OTP to verify your email address:"
        outro = "If you didn't request this, please ignore this email."
    elif template == TEMPLATE_PASSWORD_RESET:
        heading = "Password Reset"
        intro = "Please use the following OTP to reset your password:"
        outro = "If you did not request a password reset, please ignore this email."
    else:
        raise ValueError(f"Unknown email template: {template}")

    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #2c3e50;">{heading}</h2>'
        "<p>Hello,</p>"
        f"<p>{intro}</p>"
        f"{_OTP_BLOCK.format(otp=otp)}"
        f"<p>This code will expire in {settings.otp_expire_minutes} minutes.</p>"
        f"<p>{outro}</p>"
        "</div>"
    )


def queue_email(
    db: Session,
    email_to: str,
    otp: str,
    template: str,
    user_id: Optional[str] = None,
) -> EmailOutbox:
    """
    Add a pending outbox row to the session. Does NOT commit — the caller
    commits it in the same transaction as the OTP record.
    """
    record = EmailOutbox(
        user_id=user_id,
        recipient=email_to,
        template=template,
        subject=_SUBJECTS[template],
        body=_render(template, otp),
        status=STATUS_PENDING,
        attempts=0,
    )
    db.add(record)
    db.flush()
    return record


def _is_permanent(exc: Exception) -> bool:
    """Refused recipients and 5xx replies will not succeed on retry."""
    if isinstance(exc, SMTPRecipientsRefused):
        return True
    return isinstance(exc, SMTPResponseException) and exc.code >= 500


async def deliver_email(message_id: str, session_factory: sessionmaker = SessionLocal) -> None:
    """
    Send one outbox message, retrying up to MAIL_MAX_ATTEMPTS times.
    Runs after the response, with its own session.
    """
    db = session_factory()
    try:
        record = db.get(EmailOutbox, message_id)
        if record is None or record.status != STATUS_PENDING:
            return

        while True:
            record.attempts += 1
            message = MessageSchema(
                subject=record.subject,
                recipients=[record.recipient],
                body=record.body,
                subtype=MessageType.html,
            )
            try:
                await fast_mail.send_message(message)
            except (ConnectionErrors, SMTPException) as exc:
                record.last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    f"Email {record.id} to {record.recipient} failed "
                    f"(attempt {record.attempts}/{settings.mail_max_attempts}): {record.last_error}"
                )
                if _is_permanent(exc) or record.attempts >= settings.mail_max_attempts:
                    record.status = STATUS_FAILED
                    record.body = ""
                    db.commit()
                    logger.error(f"Giving up on email {record.id} to {record.recipient}")
                    return
                db.commit()
                await asyncio.sleep(settings.mail_retry_backoff_seconds * 2 ** (record.attempts - 1))
                continue

            record.status = STATUS_SENT
            record.sent_at = utcnow()
            record.last_error = None
            record.body = ""
            db.commit()
            logger.info(f"Email {record.id} ({record.template}) sent to {record.recipient}")
            return
    finally:
        db.close()


async def deliver_pending_emails(session_factory: sessionmaker = SessionLocal) -> int:
    """Retry every outbox row still pending. Returns how many were attempted."""
    db = session_factory()
    try:
        pending_ids = [
            row.id
            for row in db.query(EmailOutbox.id)
            .filter(EmailOutbox.status == STATUS_PENDING)
            .order_by(EmailOutbox.created_at.asc())
            .all()
        ]
    finally:
        db.close()

    for message_id in pending_ids:
        try:
            await deliver_email(message_id, session_factory)
        except Exception:
            # one broken row must not hold back the rest of the queue
            logger.exception(f"Redelivery of email {message_id} failed")
    if pending_ids:
        logger.info(f"Redelivered {len(pending_ids)} pending email(s)")
    return len(pending_ids)
