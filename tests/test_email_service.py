"""Tests for email delivery: classification, retries and batching."""

from __future__ import annotations

import smtplib
import socket

import pytest

from makepicks.utils.email_service import (
    EmailNotConfiguredError,
    EmailService,
    OutboundMessage,
    Recipient,
    SMTPTransport,
    is_terminal_error,
    merge_by_email,
)
from makepicks.utils.logging_config import redact_email


def _message(to_email="ann@example.com"):
    return OutboundMessage(to_email=to_email, subject="Hi", body_text="Body")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(app, transport, sleeps):
    return EmailService(transport=transport, sleep=sleeps.append)


# ----------------------------------------------------------------
# Classification
# ----------------------------------------------------------------


class TestErrorClassification:
    @pytest.mark.parametrize(
        "error",
        [
            smtplib.SMTPAuthenticationError(535, b"bad credentials"),
            smtplib.SMTPRecipientsRefused({"x@example.com": (550, b"no such user")}),
            smtplib.SMTPSenderRefused(553, b"sender rejected", "me@example.com"),
            smtplib.SMTPDataError(554, b"message rejected"),
            EmailNotConfiguredError("no credentials"),
            ValueError("bad header"),
        ],
    )
    def test_terminal(self, error):
        assert is_terminal_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            socket.timeout("timed out"),
            ConnectionResetError("reset"),
            ConnectionRefusedError("refused"),
            smtplib.SMTPServerDisconnected("gone"),
            smtplib.SMTPConnectError(421, b"try later"),
            smtplib.SMTPDataError(451, b"local error"),
        ],
    )
    def test_transient(self, error):
        assert is_terminal_error(error) is False


# ----------------------------------------------------------------
# Retry
# ----------------------------------------------------------------


class TestSendWithRetry:
    def test_success_first_try(self, service, transport, sleeps):
        result = service.send_with_retry(_message())

        assert result.ok
        assert result.attempts == 1
        assert transport.recipients == ["ann@example.com"]
        assert sleeps == []

    def test_transient_then_success(self, service, transport):
        transport.fail("ann@example.com", ConnectionResetError("reset"), socket.timeout("slow"))

        result = service.send_with_retry(_message())

        assert result.ok
        assert result.attempts == 3
        assert len(transport.sent) == 1

    def test_terminal_is_not_retried(self, service, transport, sleeps):
        transport.fail("ann@example.com", smtplib.SMTPAuthenticationError(535, b"no"))

        result = service.send_with_retry(_message())

        assert not result.ok
        assert result.terminal
        assert result.attempts == 1
        assert transport.attempts == ["ann@example.com"]
        assert sleeps == []

    def test_gives_up_after_bounded_attempts(self, app, transport, sleeps):
        app.config.update(
            EMAIL_RETRY_ATTEMPTS=3,
            EMAIL_RETRY_BASE_DELAY=1.0,
            EMAIL_RETRY_FACTOR=2.0,
            EMAIL_RETRY_MAX_DELAY=5.0,
        )
        service = EmailService(transport=transport, sleep=sleeps.append)
        transport.fail("ann@example.com", *[ConnectionResetError("reset")] * 10)

        result = service.send_with_retry(_message())

        assert not result.ok
        assert not result.terminal
        assert result.attempts == 4
        assert sleeps == [1.0, 2.0, 4.0]

    def test_delay_is_capped(self, app, transport):
        app.config.update(
            EMAIL_RETRY_BASE_DELAY=1.0, EMAIL_RETRY_FACTOR=2.0, EMAIL_RETRY_MAX_DELAY=5.0
        )
        service = EmailService(transport=transport)

        assert [service.retry_delay(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


# ----------------------------------------------------------------
# Batch
# ----------------------------------------------------------------


class TestBatchSend:
    def test_one_failure_does_not_stop_the_rest(self, service, transport):
        transport.fail("bad@example.com", smtplib.SMTPRecipientsRefused({}))
        messages = [_message("a@example.com"), _message("bad@example.com"), _message("c@example.com")]

        report = service.batch_send(messages)

        assert report.sent == 2
        assert report.failed == 1
        assert [r.to_email for r in report.failures] == ["bad@example.com"]
        assert [r.to_email for r in report.results] == [m.to_email for m in messages]

    def test_disabled_suppresses_everything(self, service, transport):
        report = service.batch_send([_message("a@example.com")], enabled=False)

        assert report.skipped == 1
        assert transport.attempts == []

    def test_empty_batch(self, service):
        assert service.batch_send([]).results == []


class TestSMTPTransport:
    def test_missing_credentials_is_terminal(self, service):
        service.transport = SMTPTransport("localhost", 587, None, None)

        result = service.send_with_retry(_message())

        assert result.terminal
        assert "not configured" in result.error

    def test_configuration_check_reports_missing_credentials(self, service):
        service.transport = SMTPTransport("localhost", 587, None, None)

        ok, message = service.test_email_configuration()

        assert ok is False
        assert "not configured" in message


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------


class TestMergeByEmail:
    def test_shared_address_merges_case_insensitively(self):
        groups = merge_by_email(
            [
                Recipient(1, "Ann", "family@example.com"),
                Recipient(2, "Bob", "solo@example.com"),
                Recipient(3, "Cat", "Family@Example.com"),
            ]
        )

        assert [(email, [r.name for r in rs]) for email, rs in groups] == [
            ("family@example.com", ["Ann", "Cat"]),
            ("solo@example.com", ["Bob"]),
        ]

    def test_blank_addresses_are_dropped(self):
        assert merge_by_email([Recipient(1, "Ann", "  ")]) == []


class TestRedactEmail:
    @pytest.mark.parametrize(
        "email,expected",
        [
            ("john.doe@example.com", "j****@e*****"),
            ("jo@example.com", "****@e*****"),
            ("someone@localhost", "s****@*****"),
            ("not-an-email", "****"),
            (None, "****"),
        ],
    )
    def test_masks(self, email, expected):
        assert redact_email(email) == expected
