"""watchmail: email a notification for every new file in a folder tree."""

__version__ = "0.3.0"

from .exceptions import (
    ConfigError,
    CredentialError,
    CredentialStoreError,
    CredentialStoreUnavailableError,
    DeliveryError,
    SubscriptionError,
    WatchMailError,
)

__all__ = [
    "__version__",
    "WatchMailError",
    "ConfigError",
    "CredentialError",
    "CredentialStoreError",
    "CredentialStoreUnavailableError",
    "SubscriptionError",
    "DeliveryError",
]
