"""Tests for notification building and SMTP delivery."""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime
from pathlib import Path

import pytest

from watchmail.config import WatchConfiguration
from watchmail.credentials import Credential
from watchmail.events import FileEvent
from watchmail.exceptions import DeliveryError
from watchmail.mailer import SmtpMailer, build_notification

CRED = Credential("smtp", "me@example.com", "hunter2")
EVENT = FileEvent(
    path=Path("/inbox/report.csv"),
    detected_at=datetime(2026, 3, 14, 9, 26, 53),
)


def _message():
    return build_notification(EVENT, "bot@example.com", "me@example.com", root="/inbox")


class TestBuildNotification:
    def test_subject_contains_path(self):
        msg = _message()
        assert "report.csv" in msg["Subject"]
        assert str(EVENT.path) in msg["Subject"]

    def test_body_contains_path_and_time(self):
        body = _message().get_content()
        assert "/inbox/report.csv" in body
        assert "2026-03-14 09:26:53" in body
        assert "Watching: /inbox" in body

    def test_addresses(self):
        msg = _message()
        assert msg["From"] == "bot@example.com"
        assert msg["To"] == "me@example.com"

    def test_subject_prefix(self):
        msg = build_notification(
            EVENT, "a@example.com", "b@example.com", subject_prefix="[drop]"
        )
        assert msg["Subject"].startswith("[drop] New file:")


class TestFileEvent:
    def test_now_makes_absolute_path(self):
        event = FileEvent.now("relative/file.txt")
        assert event.path.is_absolute()
        assert event.detected_at.tzinfo is not None

    def test_now_decodes_bytes(self):
        event = FileEvent.now(b"/tmp/x.bin")
        assert event.path == Path("/tmp/x.bin")


class TestSmtpMailer:
    def test_send_with_tls(self, fake_smtp):
        mailer = SmtpMailer("smtp.example.com", 587, use_tls=True, smtp_factory=fake_smtp)
        assert mailer.send(_message(), CRED) is True

        (session,) = fake_smtp.sessions
        assert (session.host, session.port) == ("smtp.example.com", 587)
        assert session.started_tls is True
        assert session.login_args == ("me@example.com", "hunter2")
        assert len(session.sent) == 1

    def test_send_without_tls(self, fake_smtp):
        mailer = SmtpMailer("relay.local", 25, use_tls=False, smtp_factory=fake_smtp)
        assert mailer.send(_message(), CRED) is True
        assert fake_smtp.sessions[0].started_tls is False

    def test_auth_failure_returns_false(self, fake_smtp, caplog):
        fake_smtp.fail_with = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        mailer = SmtpMailer("smtp.example.com", 587, smtp_factory=fake_smtp)

        with caplog.at_level(logging.WARNING, logger="watchmail"):
            assert mailer.send(_message(), CRED) is False

        assert "report.csv" in caplog.text
        assert "SMTP login rejected" in caplog.text
        assert "hunter2" not in caplog.text

    def test_connection_error_returns_false(self):
        def _refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        mailer = SmtpMailer("nowhere.invalid", 587, smtp_factory=_refuse)
        assert mailer.send(_message(), CRED) is False

    def test_single_attempt_per_send(self, fake_smtp):
        fake_smtp.fail_with = smtplib.SMTPServerDisconnected("gone")
        mailer = SmtpMailer("smtp.example.com", 587, smtp_factory=fake_smtp)
        mailer.send(_message(), CRED)
        assert len(fake_smtp.sessions) == 1

    def test_from_config(self):
        cfg = WatchConfiguration(smtp_host="mail.example.com", smtp_port=2525, use_tls=False)
        mailer = SmtpMailer.from_config(cfg)
        assert mailer.host == "mail.example.com"

    def test_deliver_raises_delivery_error(self, fake_smtp):
        cause = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        fake_smtp.fail_with = cause
        mailer = SmtpMailer("smtp.example.com", 587, smtp_factory=fake_smtp)

        with pytest.raises(DeliveryError, match="smtp.example.com:587") as exc_info:
            mailer.deliver(_message(), CRED)

        assert exc_info.value.__cause__ is cause
        assert "hunter2" not in str(exc_info.value)

    def test_deliver_wraps_socket_errors(self):
        def _refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        mailer = SmtpMailer("nowhere.invalid", 587, smtp_factory=_refuse)
        with pytest.raises(DeliveryError):
            mailer.deliver(_message(), CRED)
