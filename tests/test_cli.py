"""Tests for the watchmail command line."""

from __future__ import annotations

import json
import logging
import signal
from pathlib import Path

import pytest
from click.testing import CliRunner

from watchmail.__main__ import main
from watchmail.config import load_config
from watchmail.credentials import SERVICE_NAME

from conftest import CtrlCPrompter


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures root logging; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def no_signals(monkeypatch):
    monkeypatch.setattr("watchmail.watcher.install_signal_handlers", lambda watcher: {})


class TestCredentialCommands:
    def test_set_saves_entered_login(self, memory_keyring):
        runner = CliRunner()
        result = runner.invoke(
            main, ["credential", "set", "smtp"], input="me@example.com\nhunter2\n"
        )

        assert result.exit_code == 0, result.output
        assert "Saved 'smtp' for me@example.com" in result.output
        assert len(memory_keyring.writes) == 1
        stored = json.loads(memory_keyring.entries[(SERVICE_NAME, "smtp")])
        assert stored == {"username": "me@example.com", "secret": "hunter2"}

    def test_set_with_nothing_entered_fails(self, memory_keyring):
        result = CliRunner().invoke(main, ["credential", "set", "smtp"], input="\n")
        assert result.exit_code == 1
        assert memory_keyring.writes == []

    def test_show_prints_username_only(self, memory_keyring):
        memory_keyring.entries[(SERVICE_NAME, "smtp")] = json.dumps(
            {"username": "me@example.com", "secret": "hunter2"}
        )
        result = CliRunner().invoke(main, ["credential", "show", "smtp"])
        assert result.exit_code == 0
        assert "me@example.com" in result.output
        assert "hunter2" not in result.output

    def test_show_missing(self, memory_keyring):
        result = CliRunner().invoke(main, ["credential", "show", "nope"])
        assert result.exit_code == 1

    def test_delete(self, memory_keyring):
        memory_keyring.entries[(SERVICE_NAME, "smtp")] = "pw"
        result = CliRunner().invoke(main, ["credential", "delete", "smtp"])
        assert result.exit_code == 0
        assert (SERVICE_NAME, "smtp") not in memory_keyring.entries


class TestWatchCommand:
    def test_missing_credential_without_prompt_exits(
        self, memory_keyring, no_signals, tmp_path: Path
    ):
        result = CliRunner().invoke(
            main,
            ["watch", str(tmp_path), "--config", str(tmp_path / "none.yaml"), "--no-prompt"],
        )
        assert result.exit_code == 1

    def test_missing_folder_exits(self, memory_keyring, no_signals, tmp_path: Path):
        memory_keyring.entries[(SERVICE_NAME, "watchmail")] = json.dumps(
            {"username": "me@example.com", "secret": "pw"}
        )
        result = CliRunner().invoke(
            main,
            [
                "watch",
                str(tmp_path / "missing"),
                "--config",
                str(tmp_path / "none.yaml"),
                "--no-prompt",
            ],
        )
        assert result.exit_code == 1

    def test_ctrl_c_at_prompt_exits_without_watching(
        self, memory_keyring, default_sigint, monkeypatch, tmp_path: Path
    ):
        monkeypatch.setattr("watchmail.credentials.ConsolePrompter", CtrlCPrompter)

        result = CliRunner().invoke(
            main, ["watch", str(tmp_path), "--config", str(tmp_path / "none.yaml")]
        )

        assert result.exit_code == 1
        assert CtrlCPrompter.interrupted
        assert "Watching" not in result.output
        assert "Stopped." not in result.output
        assert memory_keyring.writes == []
        assert signal.getsignal(signal.SIGINT) is signal.default_int_handler

    def test_invalid_port_reports_config_error(self, no_signals, tmp_path: Path):
        result = CliRunner().invoke(
            main,
            [
                "watch",
                str(tmp_path),
                "--config",
                str(tmp_path / "none.yaml"),
                "--smtp-port",
                "99999",
            ],
        )
        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestSetupCommand:
    def test_setup_writes_config(self, memory_keyring, tmp_path: Path):
        config_path = tmp_path / "config.yaml"
        inbox = tmp_path / "inbox"
        inbox.mkdir()
        answers = "\n".join(
            [
                str(inbox),  # folder
                "mail.example.com",  # host
                "2525",  # port
                "n",  # STARTTLS
                "",  # credential name (default)
                "",  # sender
                "team@example.com",  # recipient
                "n",  # store credential now
            ]
        )
        result = CliRunner().invoke(
            main, ["setup", "--config", str(config_path)], input=answers + "\n"
        )

        assert result.exit_code == 0, result.output
        cfg = load_config(config_path)
        assert cfg.root == str(inbox)
        assert cfg.smtp_host == "mail.example.com"
        assert cfg.smtp_port == 2525
        assert cfg.use_tls is False
        assert cfg.credential_id == "watchmail"
        assert cfg.recipient == "team@example.com"
        assert memory_keyring.writes == []


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "watchmail" in result.output
