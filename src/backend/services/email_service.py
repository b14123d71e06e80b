"""
Outbound transactional email over SMTP.

Sending is fire-and-forget: `EmailService.send_in_background` schedules the
send on the running loop and returns immediately. Delivery failures are
logged and counted, never reported back to the request that triggered them.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Set

from core.async_utils import run_blocking
from core.config import EmailSettings, settings
from core.metrics import track_email

logger = logging.getLogger(__name__)


class EmailService:
    """SMTP sender configured from `EMAIL_*` settings."""

    def __init__(self, config: Optional[EmailSettings] = None):
        self.config = config or settings.email
        self._pending: Set[asyncio.Task] = set()

    def _build_message(
        self, to: str, subject: str, plain_text: str, html: Optional[str]
    ) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.config.smtp_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(plain_text, "plain"))
        if html:
            msg.attach(MIMEText(html, "html"))
        return msg

    def _send_sync(self, msg: MIMEMultipart) -> None:
        timeout = self.config.timeout_seconds
        if self.config.smtp_port == 465:
            server = smtplib.SMTP_SSL(self.config.smtp_host, self.config.smtp_port, timeout=timeout)
        else:
            server = smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=timeout)
        try:
            if self.config.smtp_tls and self.config.smtp_port != 465:
                server.starttls()
            if self.config.smtp_user and self.config.smtp_password:
                server.login(self.config.smtp_user, self.config.smtp_password)
            server.send_message(msg)
        finally:
            server.quit()

    async def send(
        self,
        to: str,
        subject: str,
        plain_text: str,
        html: Optional[str] = None,
    ) -> None:
        """Send one email and wait for the SMTP server to accept it.

        Raises:
            smtplib.SMTPException, OSError: Delivery to the server failed
        """
        if not self.config.enabled:
            logger.info(f"Email disabled, not sending | To: {to} | Subject: {subject}")
            return

        msg = self._build_message(to, subject, plain_text, html)
        try:
            await run_blocking(self._send_sync, msg)
        except (smtplib.SMTPException, OSError):
            track_email(subject, False)
            raise
        track_email(subject, True)
        logger.info(f"Email sent | To: {to} | Subject: {subject}")

    def send_in_background(
        self,
        to: str,
        subject: str,
        plain_text: str,
        html: Optional[str] = None,
    ) -> asyncio.Task:
        """Schedule `send` without awaiting it; failures are only logged."""
        task = asyncio.create_task(self.send(to, subject, plain_text, html))
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Failed to send email: {type(exc).__name__}: {exc}")

    async def drain(self) -> None:
        """Wait for scheduled sends; called on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


email_service = EmailService()


def get_email_service() -> EmailService:
    """FastAPI dependency returning the process-wide sender."""
    return email_service
