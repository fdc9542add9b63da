"""
Email Service for round notifications

This module handles outbound email for the round clock:
- SMTP transport (smtplib, STARTTLS)
- Failure classification into terminal and transient errors
- Bounded retries with exponential backoff
- Batched sends over a small thread pool
- Merging recipients who share an inbox
"""

import logging
import smtplib
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from flask import current_app

from makepicks.utils.logging_config import redact_email

logger = logging.getLogger(__name__)

STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


class EmailNotConfiguredError(Exception):
    """SMTP credentials are missing"""


@dataclass
class Recipient:
    user_id: int
    name: str
    email: str
    pick_url: Optional[str] = None


@dataclass
class OutboundMessage:
    to_email: str
    subject: str
    body_text: str
    body_html: Optional[str] = None
    user_ids: List[int] = field(default_factory=list)


@dataclass
class DeliveryResult:
    to_email: str
    status: str
    attempts: int = 0
    error: Optional[str] = None
    terminal: bool = False

    @property
    def ok(self):
        return self.status == STATUS_SENT


@dataclass
class BatchReport:
    results: List[DeliveryResult] = field(default_factory=list)

    @property
    def sent(self):
        return sum(1 for r in self.results if r.status == STATUS_SENT)

    @property
    def failed(self):
        return sum(1 for r in self.results if r.status == STATUS_FAILED)

    @property
    def skipped(self):
        return sum(1 for r in self.results if r.status == STATUS_SKIPPED)

    @property
    def failures(self):
        return [r for r in self.results if r.status == STATUS_FAILED]

    def summary(self):
        return f"{self.sent} sent, {self.failed} failed, {self.skipped} skipped"


def is_terminal_error(error):
    """True when retrying `error` cannot succeed"""
    if isinstance(error, EmailNotConfiguredError):
        return True
    if isinstance(
        error,
        (
            smtplib.SMTPAuthenticationError,
            smtplib.SMTPRecipientsRefused,
            smtplib.SMTPSenderRefused,
        ),
    ):
        return True
    if isinstance(error, (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected)):
        return False
    if isinstance(error, smtplib.SMTPResponseException):
        # 5xx is a permanent rejection, 4xx asks us to try again
        return error.smtp_code >= 500
    if isinstance(error, (TimeoutError, ConnectionError)):
        return False
    if isinstance(error, (ValueError, UnicodeError)):
        # Malformed message or address
        return True
    return False


def merge_by_email(recipients):
    """
    Group recipients sharing an address (case-insensitive).

    Returns a list of (email, [Recipient, ...]) in first-seen order.
    """
    groups = {}
    for recipient in recipients:
        key = (recipient.email or "").strip().lower()
        if not key:
            continue
        if key not in groups:
            groups[key] = (recipient.email.strip(), [])
        groups[key][1].append(recipient)
    return list(groups.values())


class SMTPTransport:
    """Sends a single MIME message over a fresh SMTP connection"""

    def __init__(self, server, port, username, password, use_tls=True, timeout=30):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @property
    def is_configured(self):
        return bool(self.username and self.password)

    def send(self, from_email, to_email, mime_message):
        if not self.is_configured:
            raise EmailNotConfiguredError("SMTP credentials not configured")

        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            server.login(self.username, self.password)
            server.sendmail(from_email, [to_email], mime_message.as_string())

    def verify(self):
        if not self.is_configured:
            raise EmailNotConfiguredError("SMTP credentials not configured")

        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            server.login(self.username, self.password)


class EmailService:
    """Handles all email sending functionality"""

    def __init__(self, transport=None, sleep=time.sleep):
        config = current_app.config
        self.from_email = config.get("FROM_EMAIL") or config.get(
            "MAIL_USERNAME"
        ) or "noreply@localhost"
        self.from_name = config.get("FROM_NAME", "Go Make Your Picks")
        self.retry_attempts = int(config.get("EMAIL_RETRY_ATTEMPTS", 3))
        self.base_delay = float(config.get("EMAIL_RETRY_BASE_DELAY", 1.0))
        self.backoff_factor = float(config.get("EMAIL_RETRY_FACTOR", 2.0))
        self.max_delay = float(config.get("EMAIL_RETRY_MAX_DELAY", 5.0))
        self.max_workers = max(1, int(config.get("EMAIL_MAX_CONCURRENCY", 5)))
        self.transport = transport or SMTPTransport(
            config.get("MAIL_SERVER") or "localhost",
            config.get("MAIL_PORT", 587),
            config.get("MAIL_USERNAME"),
            config.get("MAIL_PASSWORD"),
            use_tls=config.get("MAIL_USE_TLS", True),
            timeout=config.get("MAIL_TIMEOUT", 30),
        )
        self._sleep = sleep

    def _create_message(self, to_email, subject, body_text, body_html=None):
        """Create email message"""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        msg.attach(MIMEText(body_text, "plain"))
        if body_html:
            msg.attach(MIMEText(body_html, "html"))

        return msg

    def retry_delay(self, retry_number):
        """Seconds to wait before retry `retry_number` (1-based)"""
        delay = self.base_delay * (self.backoff_factor ** (retry_number - 1))
        return min(delay, self.max_delay)

    def send_with_retry(self, message):
        """Send one message, retrying transient failures"""
        masked = redact_email(message.to_email)
        max_attempts = 1 + max(0, self.retry_attempts)
        last_error = None

        for attempt in range(1, max_attempts + 1):
            try:
                mime = self._create_message(
                    message.to_email, message.subject, message.body_text, message.body_html
                )
                self.transport.send(self.from_email, message.to_email, mime)
                if attempt > 1:
                    logger.info(f"Email sent to {masked} after {attempt} attempts")
                else:
                    logger.info(f"Email sent to {masked}")
                return DeliveryResult(message.to_email, STATUS_SENT, attempts=attempt)

            except Exception as e:
                last_error = e
                if is_terminal_error(e):
                    logger.error(
                        f"Email to {masked} abandoned (terminal): {type(e).__name__}: {e}"
                    )
                    return DeliveryResult(
                        message.to_email,
                        STATUS_FAILED,
                        attempts=attempt,
                        error=str(e),
                        terminal=True,
                    )

                if attempt < max_attempts:
                    delay = self.retry_delay(attempt)
                    logger.warning(
                        f"Email to {masked} failed (attempt {attempt}/{max_attempts}): "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.1f}s"
                    )
                    self._sleep(delay)

        logger.error(
            f"Email to {masked} failed after {max_attempts} attempts: {last_error}"
        )
        return DeliveryResult(
            message.to_email, STATUS_FAILED, attempts=max_attempts, error=str(last_error)
        )

    def batch_send(self, messages, enabled=True):
        """
        Send messages with bounded concurrency.

        Every message is attempted regardless of other failures; the
        report carries one result per message in input order.
        """
        report = BatchReport()
        if not messages:
            return report

        if not enabled:
            logger.info(
                f"Email notifications disabled - suppressed {len(messages)} message(s)"
            )
            report.results = [
                DeliveryResult(m.to_email, STATUS_SKIPPED, error="notifications disabled")
                for m in messages
            ]
            return report

        workers = min(self.max_workers, len(messages))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="email") as pool:
            report.results = list(pool.map(self.send_with_retry, messages))

        logger.info(f"Email batch complete: {report.summary()}")
        return report

    def test_email_configuration(self):
        """Test email configuration"""
        try:
            self.transport.verify()
            return True, "Email configuration is working"

        except Exception as e:
            return False, f"Email configuration error: {str(e)}"
