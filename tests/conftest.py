"""Shared fakes: in-memory keyring backend and a recording SMTP client."""

from __future__ import annotations

import os
import signal
import time

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError


class InMemoryKeyring(KeyringBackend):
    """Keyring backend that keeps entries in a dict and records writes."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.entries: dict[tuple[str, str], str] = {}
        self.writes: list[tuple[str, str, str]] = []

    def get_password(self, service, username):
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        self.writes.append((service, username, password))
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError("not found") from None


class FakeSMTP:
    """Stands in for smtplib.SMTP; class-level log of every session."""

    sessions: list["FakeSMTP"] = []
    fail_with: Exception | None = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.login_args: tuple[str, str] | None = None
        self.sent: list = []
        FakeSMTP.sessions.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.login_args = (user, password)
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with

    def send_message(self, msg):
        self.sent.append(msg)


@pytest.fixture
def memory_keyring():
    """Install an InMemoryKeyring as the process-wide keyring backend."""
    previous = keyring.get_keyring()
    backend = InMemoryKeyring()
    keyring.set_keyring(backend)
    try:
        yield backend
    finally:
        keyring.set_keyring(previous)


@pytest.fixture
def fake_smtp():
    FakeSMTP.sessions = []
    FakeSMTP.fail_with = None
    yield FakeSMTP
    FakeSMTP.sessions = []
    FakeSMTP.fail_with = None


class CtrlCPrompter:
    """Prompter whose user presses Ctrl+C at the username prompt."""

    interrupted = False

    def ask_username(self, identifier):
        try:
            os.kill(os.getpid(), signal.SIGINT)
            time.sleep(1.0)
        except KeyboardInterrupt:
            CtrlCPrompter.interrupted = True
            return ""
        return "typed-after-ctrl-c"

    def ask_secret(self, username):
        return "pw"

    def confirm_save(self, identifier):
        return False


@pytest.fixture
def default_sigint():
    """Ctrl+C raises KeyboardInterrupt; handlers are restored afterwards."""
    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    signal.signal(signal.SIGINT, signal.default_int_handler)
    CtrlCPrompter.interrupted = False
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)
