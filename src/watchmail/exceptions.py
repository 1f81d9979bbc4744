"""Custom exception hierarchy for watchmail.

All watchmail exceptions inherit from WatchMailError, allowing callers
to catch broad or specific errors:

    try:
        store.store("smtp", "me@example.com", secret)
    except CredentialStoreError as e:
        print(f"Could not save credential: {e}")
    except WatchMailError as e:
        print(f"watchmail error: {e}")
"""

from __future__ import annotations


class WatchMailError(Exception):
    """Base exception for all watchmail errors."""


class ConfigError(WatchMailError):
    """Raised when configuration is invalid or missing."""


class CredentialError(WatchMailError):
    """Raised when a credential cannot be resolved."""


class CredentialStoreError(CredentialError):
    """Raised when the OS secret store fails a lookup, write or delete."""


class CredentialStoreUnavailableError(CredentialStoreError):
    """Raised when no usable secret-store backend is installed."""


class SubscriptionError(WatchMailError):
    """Raised when the watcher cannot subscribe to file-creation events."""


class DeliveryError(WatchMailError):
    """Raised when a notification email cannot be delivered."""
