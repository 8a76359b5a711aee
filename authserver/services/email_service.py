"""
Email service using fastapi-mail over SMTP.

SMTP is configured with SMTP_HOST / SMTP_PORT / SMTP_USER / SMTP_PASS.
  - port 587 → STARTTLS
  - port 465 → implicit SSL/TLS

When SMTP is not configured the message is not sent. Outside production the
content (including the OTP code or reset link) is logged instead so local
development works without a mail server. In production an unconfigured
channel is a delivery failure.
"""
import html
import logging
from typing import Optional

from fastapi import Request
from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType

from authserver.config import Settings
from authserver.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10


def _escape(value: Optional[str], fallback: str = "") -> str:
    return html.escape(value) if value else fallback


def _button(url: str, label: str) -> str:
    return (
        f'<a href="{url}" style="display: inline-block; padding: 12px 24px; '
        f'background-color: #2563eb; color: white; text-decoration: none; '
        f'border-radius: 4px; font-weight: bold;">{label}</a>'
    )


class EmailService:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.app_name = settings.app_name
        self.app_url = settings.frontend_url.rstrip("/")
        self._mailer: Optional[FastMail] = None

        if settings.smtp_configured:
            # Build connection config once: don't rebuild on every request
            config = ConnectionConfig(
                MAIL_USERNAME=settings.smtp_user,
                MAIL_PASSWORD=settings.smtp_pass,
                MAIL_FROM=settings.mail_from or settings.smtp_user,
                MAIL_FROM_NAME=settings.app_name,
                MAIL_PORT=settings.smtp_port,
                MAIL_SERVER=settings.smtp_host,
                MAIL_STARTTLS=settings.smtp_port != 465,
                MAIL_SSL_TLS=settings.smtp_port == 465,
                USE_CREDENTIALS=True,
                VALIDATE_CERTS=True,
                TIMEOUT=SMTP_TIMEOUT_SECONDS,
            )
            self._mailer = FastMail(config)
        else:
            logger.warning("SMTP configuration is incomplete. Emails will not be sent.")

    @property
    def configured(self) -> bool:
        return self._mailer is not None

    async def _deliver(self, recipient: str, subject: str, body: str, dev_log: str) -> None:
        """
        Send one HTML message. Any failure surfaces as EmailDeliveryError so
        callers decide whether the email was mandatory or best-effort.
        """
        if not self.configured:
            if self.settings.is_production:
                raise EmailDeliveryError("Email channel is not configured")
            logger.info(f"[DEV EMAIL] {dev_log}")
            return

        message = MessageSchema(
            subject=subject,
            recipients=[recipient],
            body=body,
            subtype=MessageType.html,
        )
        try:
            await self._mailer.send_message(message)
        except Exception as exc:
            logger.error(f"Failed to send '{subject}' to {recipient}: {exc}")
            raise EmailDeliveryError() from exc

    async def send_otp_email(self, email: str, otp: str, name: Optional[str] = None) -> None:
        minutes = self.settings.otp_expiry_minutes
        body = (
            f'<div style="font-family: Arial, sans-serif; max-width: 600px;">'
            f'<h2 style="color: #2563eb;">Hello {_escape(name, "User")},</h2>'
            f"<p>Your verification code is:</p>"
            f'<div style="font-size: 24px; font-weight: bold; letter-spacing: 2px; '
            f'padding: 15px; background: #f3f4f6; border-radius: 8px; display: inline-block;">'
            f"{html.escape(otp)}</div>"
            f"<p>This code will expire in {minutes} minutes.</p>"
            f"<p><em>If you didn't request this, please ignore this email.</em></p>"
            f"</div>"
        )
        await self._deliver(
            email,
            f"{self.app_name} - Your OTP Code",
            body,
            dev_log=f"OTP for {email}: {otp} (valid {minutes}m)",
        )

    async def send_verification_success_email(self, email: str, name: Optional[str] = None) -> None:
        login_url = f"{self.app_url}/login"
        body = (
            f'<div style="font-family: Arial, sans-serif; max-width: 600px;">'
            f'<h2 style="color: #2563eb;">Congratulations {_escape(name, "User")}!</h2>'
            f"<p>Your email <strong>{html.escape(email)}</strong> has been successfully verified.</p>"
            f"<p>You can now access all features of {html.escape(self.app_name)}.</p>"
            f"{_button(login_url, 'Login to Your Account')}"
            f"</div>"
        )
        await self._deliver(
            email,
            f"{self.app_name} - Email Verified Successfully",
            body,
            dev_log=f"Verification success for {email}",
        )

    async def send_password_reset_email(
        self,
        email: str,
        reset_url: str,
        name: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
    ) -> None:
        ttl = ttl_minutes or self.settings.reset_token_ttl_minutes
        safe_url = html.escape(reset_url)
        body = (
            f'<div style="font-family: Arial, sans-serif; max-width: 600px;">'
            f'<h2 style="color: #2563eb;">Hello {_escape(name, "User")},</h2>'
            f"<p>We received a request to reset the password for <strong>{html.escape(email)}</strong>.</p>"
            f"<p>Click the button below to reset your password. This link is valid for {ttl} minutes.</p>"
            f"<p>{_button(safe_url, 'Reset password')}</p>"
            f"<p>If the button doesn't work, copy and paste this link into your browser:</p>"
            f'<p><a href="{safe_url}">{safe_url}</a></p>'
            f"<p><em>If you didn't request this, just ignore this email. No changes were made.</em></p>"
            f"</div>"
        )
        await self._deliver(
            email,
            f"{self.app_name} - Password Reset Request",
            body,
            dev_log=f"Password reset for {email}: {reset_url} (valid {ttl}m)",
        )

    async def send_password_change_confirmation_email(self, email: str, name: Optional[str] = None) -> None:
        login_url = f"{self.app_url}/auth/login"
        body = (
            f'<div style="font-family: Arial, sans-serif; max-width: 600px;">'
            f'<h2 style="color: #2563eb;">Hi {_escape(name, "User")},</h2>'
            f"<p>Your password for <strong>{html.escape(email)}</strong> has just been changed.</p>"
            f"<p>If you made this change, you can safely ignore this email. If you did NOT change "
            f"your password, please reset it immediately and contact support.</p>"
            f"<p>{_button(login_url, 'Login')}</p>"
            f"</div>"
        )
        await self._deliver(
            email,
            f"{self.app_name} - Your password was changed",
            body,
            dev_log=f"Password-change confirmation for {email}",
        )


async def send_best_effort(send, *args, **kwargs) -> None:
    """
    Run an email send whose failure must not affect the request outcome.
    Scheduled through FastAPI BackgroundTasks after the DB transaction commits.
    """
    try:
        await send(*args, **kwargs)
    except EmailDeliveryError as exc:
        logger.warning(f"Best-effort email {getattr(send, '__name__', send)} failed: {exc}")


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service
