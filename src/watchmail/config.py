"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .credentials import Credential, PersistenceScope
from .exceptions import ConfigError

DEFAULT_CONFIG_PATH = "~/.watchmail/config.yaml"
DEFAULT_SENDER = "folder-watcher@localhost"
DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587
DEFAULT_CREDENTIAL_ID = "watchmail"


class WatchConfiguration(BaseModel):
    """Everything the folder watcher needs.  Immutable once built."""

    model_config = ConfigDict(frozen=True)

    root: str = "."
    sender: str = ""  # Empty = DEFAULT_SENDER
    recipient: str = ""  # Empty = credential username
    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = Field(default=DEFAULT_SMTP_PORT, ge=1, le=65535)
    use_tls: bool = True  # STARTTLS before login
    smtp_timeout: float = Field(default=30.0, gt=0)
    credential_id: str = DEFAULT_CREDENTIAL_ID
    persistence: PersistenceScope = PersistenceScope.LOCAL_MACHINE
    patterns: tuple[str, ...] = ("*",)
    recursive: bool = True
    poll_interval: float = Field(default=1.0, gt=0)  # Cancellation check, seconds
    subject_prefix: str = "[watchmail]"

    @field_validator("patterns", mode="before")
    @classmethod
    def _split_patterns(cls, value):
        if isinstance(value, str):
            value = [p.strip() for p in value.split(",")]
        if not value:
            return ("*",)
        return tuple(p for p in value if p) or ("*",)

    @property
    def root_path(self) -> Path:
        return Path(self.root).expanduser().resolve()


def resolve_addresses(
    config: WatchConfiguration, credential: Credential
) -> WatchConfiguration:
    """Fill sender/recipient defaults.  Recipient falls back to the login."""
    return config.model_copy(
        update={
            "sender": config.sender or DEFAULT_SENDER,
            "recipient": config.recipient or credential.username,
        }
    )


def apply_overrides(config: WatchConfiguration, **overrides) -> WatchConfiguration:
    """Return a validated copy with non-None overrides applied (CLI flags)."""
    changes = {k: v for k, v in overrides.items() if v is not None}
    if not changes:
        return config
    return _validate({**config.model_dump(), **changes}, source="command line")


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


_ENV_FIELDS = {
    "WATCHMAIL_ROOT": "root",
    "WATCHMAIL_FROM": "sender",
    "WATCHMAIL_TO": "recipient",
    "WATCHMAIL_SMTP_HOST": "smtp_host",
    "WATCHMAIL_SMTP_PORT": "smtp_port",
    "WATCHMAIL_USE_TLS": "use_tls",
    "WATCHMAIL_CREDENTIAL": "credential_id",
    "WATCHMAIL_PATTERNS": "patterns",
}


def _config_from_env() -> WatchConfiguration:
    """Build config from WATCHMAIL_* environment variables.

    Falls back to defaults for anything not set.
    """
    data = {
        name: os.environ[var] for var, name in _ENV_FIELDS.items() if os.environ.get(var)
    }
    return _validate(data, source="environment")


def _validate(data: dict, source: str) -> WatchConfiguration:
    try:
        return WatchConfiguration(**data)
    except (ValidationError, TypeError) as e:
        raise ConfigError(f"Invalid configuration in {source}: {e}") from e


def load_config(path: str | Path | None = None) -> WatchConfiguration:
    """Load config from YAML file, env vars, or defaults.

    Priority: config.yaml (with ${ENV} interpolation) > env vars > defaults.
    """
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()

    if not path.exists():
        return _config_from_env()

    raw_text = path.read_text()
    interpolated = _interpolate_env_vars(raw_text)
    try:
        data = yaml.safe_load(interpolated)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    if data is None:
        return WatchConfiguration()
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping of settings")
    return _validate(data, source=str(path))


def save_config(config: WatchConfiguration, path: str | Path | None = None) -> Path:
    """Save config to YAML file."""
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json")
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path
