import logging
import os
from email.message import EmailMessage
from email.utils import formataddr

import aiosmtplib
from dotenv import load_dotenv

from catcafe_booking.exceptions import NotificationError

load_dotenv()
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
SMTP_SECURE = os.getenv("SMTP_SECURE", "true").lower() == "true"
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", SMTP_USER or "")
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "Ofcoz Family")
ADMIN_BCC_EMAIL = os.getenv("ADMIN_BCC_EMAIL")

logger = logging.getLogger(__name__)


class SmtpMailer:
    """Sends one HTML email per call through the configured SMTP relay."""

    def __init__(self, host: str | None = SMTP_HOST, port: int = SMTP_PORT, username: str | None = SMTP_USER,
                 password: str | None = SMTP_PASS, use_tls: bool = SMTP_SECURE,
                 from_email: str = SMTP_FROM_EMAIL, from_name: str = SMTP_FROM_NAME,
                 bcc: str | None = ADMIN_BCC_EMAIL):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.from_name = from_name
        self.bcc = bcc

    @property
    def configured(self) -> bool:
        return bool(self.host and self.from_email)

    def build_message(self, to: str, subject: str, html: str, bcc: bool = False) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = to
        message["Subject"] = subject
        if bcc and self.bcc:
            message["Bcc"] = self.bcc
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, to: str, subject: str, html: str, bcc: bool = False) -> None:
        if not self.configured:
            raise NotificationError("SMTP is not configured.")
        if not to:
            raise NotificationError("Recipient email is missing.")

        message = self.build_message(to, subject, html, bcc)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.use_tls,
                start_tls=False if self.use_tls else None,
                timeout=10,
            )
        except aiosmtplib.SMTPException as e:
            raise NotificationError(f"SMTP delivery failed: {e}") from e
        logger.info("Sent '%s' to %s", subject, to)
