"""
SMTP Connector
Sends the campaign report email.

Environment Variables:
    SMTP_HOST: SMTP server hostname (e.g., smtp.gmail.com)
    SMTP_PORT: SMTP port (default: 587 for TLS)
    SMTP_USER: SMTP username/email
    SMTP_PASSWORD: SMTP password or app password
    SMTP_FROM_EMAIL: Default sender email address
    SMTP_FROM_NAME: Default sender display name (optional)
    SMTP_USE_TLS: Use TLS (default: true)
"""
import asyncio
import ssl
import logging
import smtplib
from dataclasses import dataclass, field
from typing import List, Optional
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr

from app.core.config import Settings

logger = logging.getLogger(__name__)


class SMTPConfigError(Exception):
    """Raised when SMTP is not properly configured."""
    pass


@dataclass
class SentEmail:
    """Confirmation of a delivered email."""
    id: str
    subject: str
    to: List[str] = field(default_factory=list)
    sent_at: Optional[datetime] = None


class SMTPConnector:
    """
    Send-only SMTP client configured from settings.

    smtplib is blocking; send_email runs the exchange in the default
    executor so the event loop keeps serving webhooks meanwhile.
    """

    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.from_email = settings.smtp_from_email
        self.from_name = settings.smtp_from_name
        self.use_tls = settings.smtp_use_tls

    def is_configured(self) -> bool:
        return all([self.host, self.user, self.password, self.from_email])

    def _validate_config(self) -> None:
        if not self.is_configured():
            raise SMTPConfigError(
                "SMTP not configured. Required environment variables: "
                "SMTP_HOST, SMTP_USER, SMTP_PASSWORD, SMTP_FROM_EMAIL"
            )

    def _build_message(self, to: List[str], subject: str, body: str, body_html: Optional[str]):
        if body_html:
            message = MIMEMultipart("alternative")
            message.attach(MIMEText(body, "plain", "utf-8"))
            message.attach(MIMEText(body_html, "html", "utf-8"))
        else:
            message = MIMEText(body, "plain", "utf-8")

        message["Subject"] = subject
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = ", ".join(to)
        return message

    def _deliver(self, to: List[str], payload: str) -> None:
        with smtplib.SMTP(self.host, self.port) as server:
            if self.use_tls:
                context = ssl.create_default_context()
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
            server.login(self.user, self.password)
            server.sendmail(self.from_email, to, payload)

    async def send_email(
        self,
        to: List[str],
        subject: str,
        body: str,
        body_html: Optional[str] = None,
    ) -> SentEmail:
        """
        Send an email via SMTP.

        Args:
            to: List of recipient emails
            subject: Email subject
            body: Plain text body
            body_html: Optional HTML body

        Returns:
            SentEmail confirmation

        Raises:
            SMTPConfigError: If SMTP settings are incomplete
            ValueError: If the server rejects the login or the message
        """
        self._validate_config()
        message = self._build_message(to, subject, body, body_html)

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._deliver, to, message.as_string())
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            raise ValueError("Email authentication failed. Please check SMTP credentials.")
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {e}")
            raise ValueError(f"Failed to send email: {str(e)}")

        logger.info(f"Email sent via SMTP to {len(to)} recipients")
        return SentEmail(
            id=f"smtp-{datetime.utcnow().strftime('%Y%m%d%H%M%S%f')}",
            subject=subject,
            to=to,
            sent_at=datetime.utcnow(),
        )
