# backend/blogapi/notifications/mailer.py
"""
Outgoing email.

`Mailer.send` never raises: every delivery ends up as a `SendResult`, and
`send_bulk` tallies them. `SMTPMailer` talks to the server with aiosmtplib,
so deliveries never block the event loop.
"""
import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import List, Optional, Sequence

import aiosmtplib

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    recipient: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BulkSendReport:
    results: List[SendResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.results if not r.success)


class Mailer:
    """Base mailer; subclasses implement `deliver` for a single message."""

    async def deliver(self, to: str, subject: str, html: str) -> Optional[str]:
        raise NotImplementedError

    async def verify(self) -> bool:
        return True

    async def send(self, to: str, subject: str, html: str) -> SendResult:
        try:
            message_id = await self.deliver(to, subject, html)
        except Exception as e:
            logger.error(f"Email send error to {to}: {e}")
            return SendResult(recipient=to, success=False, error=str(e))
        logger.info(f"Email sent to {to}: {message_id}")
        return SendResult(recipient=to, success=True, message_id=message_id)

    async def send_bulk(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        *,
        batch_size: int = 5,
        batch_delay: float = 1.0,
    ) -> BulkSendReport:
        """Send in concurrent batches with a pause between batches."""
        report = BulkSendReport()
        batch_size = max(1, batch_size)
        for start in range(0, len(recipients), batch_size):
            batch = recipients[start:start + batch_size]
            report.results.extend(await asyncio.gather(*(self.send(to, subject, html) for to in batch)))
            if start + batch_size < len(recipients) and batch_delay > 0:
                await asyncio.sleep(batch_delay)

        logger.info(f"Bulk email results: {report.success_count} sent, {report.fail_count} failed")
        return report


class SMTPMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: bool = False,
        starttls: bool = True,
        from_email: str = "noreply@localhost",
        from_name: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.starttls = starttls
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> Optional["SMTPMailer"]:
        """None when SMTP_HOST is not configured."""
        if not settings.SMTP_HOST:
            return None
        return cls(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_ssl=settings.SMTP_SECURE,
            starttls=settings.SMTP_STARTTLS,
            from_email=settings.FROM_EMAIL,
            from_name=settings.FROM_NAME,
        )

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            username=self.username if self.password else None,
            password=self.password if self.username else None,
            use_tls=self.use_ssl,
            start_tls=False if self.use_ssl else self.starttls,
            timeout=self.timeout,
            tls_context=ssl.create_default_context(),
        )

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.from_email)) if self.from_name else self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content("This message requires an HTML capable email client.")
        msg.add_alternative(html, subtype="html")
        return msg

    async def deliver(self, to: str, subject: str, html: str) -> Optional[str]:
        msg = self._build_message(to, subject, html)
        async with self._client() as smtp:
            await smtp.send_message(msg)
        return msg["Message-ID"]

    async def verify(self) -> bool:
        try:
            async with self._client() as smtp:
                await smtp.noop()
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP configuration error: {e}")
            return False
        logger.info("SMTP configuration is valid")
        return True
