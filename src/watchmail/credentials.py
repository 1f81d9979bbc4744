"""SMTP credential resolution.

Resolves a named credential in three stages, each independently
failable:

1. OS secret store lookup (via ``keyring``)
2. Interactive entry (username + masked password)
3. Optional persistence of the entered credential back to the store

Only total exhaustion (store miss AND abandoned prompt) yields no
credential.  Store errors never abort resolution.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import click
import keyring
from keyring.backend import KeyringBackend
from keyring.backends import fail, null
from keyring.errors import KeyringError, PasswordDeleteError

from .exceptions import CredentialStoreError, CredentialStoreUnavailableError

logger = logging.getLogger("watchmail")

SERVICE_NAME = "watchmail"


class PersistenceScope(str, Enum):
    """Durability tier for a saved credential.

    Values match the Windows Credential Manager persistence names that
    keyring's WinVault backend accepts.  Other backends have a single
    tier and ignore the scope.
    """

    SESSION = "session"
    LOCAL_MACHINE = "local machine"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class Credential:
    """SMTP login resolved for a credential identifier."""

    identifier: str
    username: str
    secret: str = field(repr=False)


class SecretStore:
    """Thin wrapper over a keyring backend.

    One entry per identifier: ``service=watchmail``, ``username=<identifier>``,
    password field holds ``{"username": ..., "secret": ...}`` as JSON so the
    SMTP username and password are written (and read) in a single call.
    """

    def __init__(
        self,
        backend: Optional[KeyringBackend] = None,
        service_name: str = SERVICE_NAME,
    ):
        self._backend = backend
        self._service_name = service_name

    @property
    def backend(self) -> KeyringBackend:
        if self._backend is None:
            self._backend = keyring.get_keyring()
        return self._backend

    @property
    def available(self) -> bool:
        """True when a real secret-store backend is installed."""
        try:
            backend = self.backend
        except Exception as e:
            logger.debug(f"Keyring backend init failed: {e}")
            return False
        return not isinstance(backend, (fail.Keyring, null.Keyring))

    @property
    def backend_name(self) -> str:
        return type(self.backend).__name__ if self.available else "none"

    def _require_backend(self) -> KeyringBackend:
        if not self.available:
            raise CredentialStoreUnavailableError(
                "No OS secret store is available (install a keyring backend)"
            )
        return self.backend

    def lookup(self, identifier: str) -> Credential | None:
        """Return the stored credential for ``identifier`` or None."""
        backend = self._require_backend()
        try:
            raw = backend.get_password(self._service_name, identifier)
        except Exception as e:
            raise CredentialStoreError(
                f"Secret store lookup failed for '{identifier}': {e}"
            ) from e
        if raw is None:
            return None
        return _decode_entry(identifier, raw)

    def store(
        self,
        identifier: str,
        username: str,
        secret: str,
        scope: PersistenceScope = PersistenceScope.LOCAL_MACHINE,
    ) -> None:
        """Persist a credential under ``identifier``."""
        backend = self._require_backend()
        if hasattr(backend, "persist"):
            try:
                backend.persist = scope.value
            except Exception as e:
                logger.debug(f"Keyring backend rejected persistence '{scope.value}': {e}")
        payload = json.dumps({"username": username, "secret": secret})
        try:
            backend.set_password(self._service_name, identifier, payload)
        except Exception as e:
            raise CredentialStoreError(
                f"Could not save credential '{identifier}': {e}"
            ) from e

    def delete(self, identifier: str) -> bool:
        """Remove a stored credential.  Returns False if none existed."""
        backend = self._require_backend()
        try:
            backend.delete_password(self._service_name, identifier)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise CredentialStoreError(
                f"Could not delete credential '{identifier}': {e}"
            ) from e
        return True


def _decode_entry(identifier: str, raw: str) -> Credential:
    """Parse a stored entry; plain passwords map to username=identifier."""
    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if isinstance(data, dict) and "secret" in data:
        return Credential(
            identifier=identifier,
            username=str(data.get("username") or identifier),
            secret=str(data["secret"]),
        )
    return Credential(identifier=identifier, username=identifier, secret=raw)


class ConsolePrompter:
    """Interactive credential entry on the controlling terminal."""

    def ask_username(self, identifier: str) -> str:
        try:
            return click.prompt(
                f"Username for '{identifier}'", default="", show_default=False
            ).strip()
        except click.Abort:
            return ""

    def ask_secret(self, username: str) -> str:
        try:
            return click.prompt(
                f"Password for {username}",
                default="",
                show_default=False,
                hide_input=True,
            )
        except click.Abort:
            return ""

    def confirm_save(self, identifier: str) -> bool:
        try:
            return click.confirm(
                f"Save credential '{identifier}' to the OS secret store?",
                default=False,
            )
        except click.Abort:
            return False


class CredentialProvider:
    """Resolves credentials: secret store first, then interactive entry."""

    def __init__(
        self,
        store: SecretStore | None = None,
        prompter: ConsolePrompter | None = None,
        scope: PersistenceScope = PersistenceScope.LOCAL_MACHINE,
        interactive: bool = True,
    ):
        self._store = store or SecretStore()
        self._prompter = prompter or ConsolePrompter()
        self._scope = scope
        self._interactive = interactive

    @property
    def store(self) -> SecretStore:
        return self._store

    def resolve(self, identifier: str) -> Credential | None:
        """Return the credential for ``identifier`` or None if unresolved."""
        store_ok = self._store.available
        if not store_ok:
            logger.warning(
                f"OS secret store unavailable; '{identifier}' must be entered manually"
            )
        else:
            try:
                found = self._store.lookup(identifier)
            except CredentialStoreError as e:
                logger.warning(f"{e}; falling back to manual entry")
                found = None
            if found is not None:
                logger.info(
                    f"Credential '{identifier}' loaded from {self._store.backend_name}"
                )
                return found
            logger.info(f"Credential '{identifier}' not found in secret store")

        if not self._interactive:
            logger.warning(f"No stored credential '{identifier}' and prompting is disabled")
            return None

        credential = self.prompt_for(identifier)
        if credential is None:
            logger.warning(f"No credential entered for '{identifier}'")
            return None

        if store_ok and self._prompter.confirm_save(identifier):
            self.save(credential)
        return credential

    def prompt_for(self, identifier: str) -> Credential | None:
        """Ask for a username and password.  None if the user gives up."""
        username = self._prompter.ask_username(identifier)
        if not username:
            return None
        secret = self._prompter.ask_secret(username)
        if not secret:
            return None
        return Credential(identifier=identifier, username=username, secret=secret)

    def save(
        self, credential: Credential, scope: PersistenceScope | None = None
    ) -> bool:
        """Write a credential to the store.  Failure is logged, not raised."""
        try:
            self._store.store(
                credential.identifier,
                credential.username,
                credential.secret,
                scope or self._scope,
            )
        except CredentialStoreError as e:
            logger.warning(f"{e}; continuing with the entered credential")
            return False
        logger.info(f"Credential '{credential.identifier}' saved to secret store")
        return True

    def forget(self, identifier: str) -> bool:
        """Delete a stored credential.  Returns True if one was removed."""
        try:
            removed = self._store.delete(identifier)
        except CredentialStoreError as e:
            logger.warning(str(e))
            return False
        if removed:
            logger.info(f"Credential '{identifier}' removed from secret store")
        return removed
