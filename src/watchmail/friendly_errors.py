"""Human-readable messages for common failures.

Maps SMTP, secret-store, config and folder errors to a short title,
an explanation and a concrete fix the user can try.
"""

from __future__ import annotations

import platform
import smtplib
import socket
import ssl
from dataclasses import dataclass


@dataclass
class FriendlyError:
    """A user-facing error with a fix suggestion."""

    title: str
    message: str
    fix: str
    docs_url: str = ""


def friendly_smtp_error(error: Exception, host: str = "") -> FriendlyError:
    """Convert an SMTP delivery error to a readable message."""
    msg = str(error).lower()
    server = host or "the SMTP server"

    if isinstance(error, smtplib.SMTPAuthenticationError) or "authentication" in msg:
        return FriendlyError(
            title="SMTP login rejected",
            message=f"{server} did not accept the username or password.",
            fix=(
                "Check the stored credential with 'watchmail credential show'. "
                "Providers such as Gmail and Outlook require an app password "
                "when two-factor authentication is on. Re-enter it with "
                "'watchmail credential set <name>'."
            ),
        )

    if isinstance(error, smtplib.SMTPNotSupportedError) or "starttls" in msg:
        return FriendlyError(
            title="Server does not support STARTTLS",
            message=f"{server} refused to upgrade the connection to TLS.",
            fix=(
                "Use the submission port (usually 587) or run with --no-tls "
                "for a relay that only accepts plain connections."
            ),
        )

    if isinstance(error, ssl.SSLError):
        return FriendlyError(
            title="TLS handshake failed",
            message=f"A secure connection to {server} could not be established.",
            fix="Check the SMTP port. Port 587 expects STARTTLS; port 25 often has no TLS.",
        )

    if isinstance(error, smtplib.SMTPRecipientsRefused) or "recipient" in msg:
        return FriendlyError(
            title="Recipient refused",
            message="The server would not accept the recipient address.",
            fix="Check the --to address (or 'recipient' in the config file).",
        )

    if isinstance(error, smtplib.SMTPSenderRefused) or "sender" in msg:
        return FriendlyError(
            title="Sender refused",
            message="The server would not accept the sender address.",
            fix=(
                "Many providers only allow sending as the logged-in account. "
                "Set --from to your SMTP username."
            ),
        )

    if isinstance(error, (socket.timeout, TimeoutError)) or "timed out" in msg:
        return FriendlyError(
            title="SMTP server timed out",
            message=f"{server} took too long to respond.",
            fix="Check the host and port, and that outbound SMTP is not blocked by a firewall.",
        )

    # SMTPException subclasses OSError; only treat real socket errors as unreachable
    if isinstance(error, OSError) and not isinstance(error, smtplib.SMTPException):
        return FriendlyError(
            title="Cannot reach SMTP server",
            message=f"Could not connect to {server}.",
            fix="Verify --smtp-host and --smtp-port, and check your network connection.",
        )

    return FriendlyError(
        title="Email delivery failed",
        message=f"The SMTP server returned an error: {error}",
        fix="This is usually temporary. The watcher keeps running and the next file gets a new attempt.",
    )


def friendly_store_error(error: Exception) -> FriendlyError:
    """Convert a secret-store error to a readable message."""
    msg = str(error).lower()

    if "no os secret store" in msg or "no recommended backend" in msg:
        if platform.system() == "Linux":
            fix = (
                "Install and unlock a Secret Service provider (GNOME Keyring "
                "or KWallet), or install the 'keyrings.alt' package."
            )
        else:
            fix = "Install a keyring backend for your platform."
        return FriendlyError(
            title="No secret store available",
            message="Credentials cannot be saved, so you will be asked each time.",
            fix=fix,
            docs_url="https://pypi.org/project/keyring/",
        )

    if "locked" in msg or "dismissed" in msg or "denied" in msg:
        return FriendlyError(
            title="Secret store is locked",
            message="The OS keyring refused access.",
            fix="Unlock your login keyring and try again.",
        )

    return FriendlyError(
        title="Secret store error",
        message=f"The OS keyring returned an error: {error}",
        fix="The credential can still be entered manually when prompted.",
    )


def friendly_config_error(error: Exception) -> FriendlyError:
    """Convert a configuration error to a readable message."""
    msg = str(error).lower()

    if "yaml" in msg or "parse" in msg:
        return FriendlyError(
            title="Configuration file error",
            message="The configuration file has a formatting issue.",
            fix=(
                "Check ~/.watchmail/config.yaml for syntax errors. "
                "Common issues:\n"
                "- Missing spaces after colons (use 'key: value' not 'key:value')\n"
                "- Incorrect indentation (use 2 spaces, not tabs)\n"
                "Run 'watchmail setup' to regenerate it."
            ),
        )

    return FriendlyError(
        title="Configuration error",
        message=f"There's a problem with your settings: {error}",
        fix="Run 'watchmail setup' to reconfigure, or check ~/.watchmail/config.yaml",
    )


def friendly_watch_error(error: Exception, path: str = "") -> FriendlyError:
    """Convert a folder-subscription error to a readable message."""
    msg = str(error).lower()
    target = path or "the folder"

    if "inotify" in msg and ("limit" in msg or "watches" in msg):
        return FriendlyError(
            title="Too many watched folders",
            message="The system limit on inotify watches was reached.",
            fix=(
                "Raise the limit, e.g.:\n"
                "  sudo sysctl fs.inotify.max_user_watches=524288"
            ),
        )

    if isinstance(error, PermissionError) or "permission" in msg:
        return FriendlyError(
            title="Folder not readable",
            message=f"Permission denied while watching {target}.",
            fix="Run as a user that can read the folder, or pick another folder.",
        )

    if isinstance(error, FileNotFoundError) or "does not exist" in msg or "not a directory" in msg:
        return FriendlyError(
            title="Folder not found",
            message=f"{target} does not exist or is not a directory.",
            fix="Check the path passed to 'watchmail watch'.",
        )

    return FriendlyError(
        title="Cannot watch folder",
        message=f"Could not subscribe to file events: {error}",
        fix="Check the path and try again.",
    )


def format_friendly_error(err: FriendlyError) -> str:
    """Format a FriendlyError for display in the terminal."""
    lines = [
        f"Error: {err.title}",
        f"   {err.message}",
        "",
        "How to fix:",
    ]
    for line in err.fix.split("\n"):
        lines.append(f"   {line}")
    if err.docs_url:
        lines.append("")
        lines.append(f"   More info: {err.docs_url}")
    return "\n".join(lines)
