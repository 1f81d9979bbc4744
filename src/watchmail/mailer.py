"""SMTP delivery of new-file notifications.

One synchronous SMTP session per notification: connect, optional
STARTTLS, login, send, quit.  No retry; failures are logged and
reported to the caller as ``False``.
"""

from __future__ import annotations

import logging
import smtplib
import socket
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from pathlib import Path
from typing import Callable

from .config import WatchConfiguration
from .credentials import Credential
from .events import FileEvent
from .exceptions import DeliveryError
from .friendly_errors import friendly_smtp_error

logger = logging.getLogger("watchmail")


def build_notification(
    event: FileEvent,
    sender: str,
    recipient: str,
    root: Path | str | None = None,
    subject_prefix: str = "",
) -> EmailMessage:
    """Build the email announcing a created file."""
    detected = event.detected_at.isoformat(sep=" ", timespec="seconds")
    subject = f"New file: {event.path}"
    if subject_prefix:
        subject = f"{subject_prefix} {subject}"

    lines = [
        "A new file was created.",
        "",
        f"Path:     {event.path}",
        f"Detected: {detected}",
    ]
    if root is not None:
        lines.append(f"Watching: {root}")
    lines.append(f"Host:     {socket.gethostname()}")

    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain="watchmail")
    msg.set_content("\n".join(lines) + "\n")
    return msg


class SmtpMailer:
    """Sends messages through a single SMTP server."""

    def __init__(
        self,
        host: str,
        port: int,
        use_tls: bool = True,
        timeout: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self._host = host
        self._port = port
        self._use_tls = use_tls
        self._timeout = timeout
        self._smtp_factory = smtp_factory

    @classmethod
    def from_config(cls, config: WatchConfiguration) -> "SmtpMailer":
        return cls(
            host=config.smtp_host,
            port=config.smtp_port,
            use_tls=config.use_tls,
            timeout=config.smtp_timeout,
        )

    @property
    def host(self) -> str:
        return self._host

    def deliver(self, message: EmailMessage, credential: Credential) -> None:
        """One SMTP session for ``message``.

        Raises:
            DeliveryError: wrapping the ``smtplib`` or socket error.
        """
        try:
            with self._smtp_factory(
                self._host, self._port, timeout=self._timeout
            ) as smtp:
                if self._use_tls:
                    smtp.starttls(context=ssl.create_default_context())
                smtp.login(credential.username, credential.secret)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(
                f"Cannot deliver via {self._host}:{self._port}: {e}"
            ) from e

    def send(self, message: EmailMessage, credential: Credential) -> bool:
        """Deliver ``message``.  Returns True on success, False otherwise."""
        subject = message.get("Subject", "?")
        try:
            self.deliver(message, credential)
        except DeliveryError as e:
            cause = e.__cause__ or e
            hint = friendly_smtp_error(cause, host=self._host)
            logger.warning(
                f"Email failed ({subject}): {hint.title}: {cause}. {hint.fix}"
            )
            return False
        logger.info(f"Email sent to {message.get('To', '?')}: {subject}")
        return True
