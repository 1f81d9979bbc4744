"""Folder watcher: one notification email per newly created file.

Lifecycle:
  - initializing: resolve the SMTP credential, fill address defaults,
    subscribe to creation events under the root (recursive)
  - running: the main thread waits on a cancellation flag while
    watchdog's observer thread calls back for every created file
  - stopped: the subscription is removed on every exit path

Each event is handled independently: one message, one send attempt,
no retry and no queue of our own.
"""

from __future__ import annotations

import logging
import signal
import threading
from enum import Enum
from typing import Callable

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from .config import WatchConfiguration, resolve_addresses
from .credentials import Credential, CredentialProvider
from .events import FileEvent
from .exceptions import SubscriptionError, WatchMailError
from .friendly_errors import format_friendly_error, friendly_watch_error
from .mailer import SmtpMailer, build_notification

logger = logging.getLogger("watchmail")

# Max seconds to wait for watchdog's threads on shutdown
_JOIN_TIMEOUT = 5.0


class WatcherState(str, Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    STOPPED = "stopped"


class _CreationHandler(PatternMatchingEventHandler):
    """Forwards file-creation events to the watcher; ignores directories."""

    def __init__(self, watcher: "FolderWatcher", patterns: tuple[str, ...]):
        super().__init__(
            patterns=list(patterns),
            ignore_directories=True,
            case_sensitive=False,
        )
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        file_event = FileEvent.now(event.src_path)
        try:
            self._watcher.handle_event(file_event)
        except Exception:
            # Keep the observer thread alive for the next event
            logger.exception(f"Failed to handle new file {file_event.path}")


class FolderWatcher:
    """Watches a directory tree and emails a notice for each new file."""

    def __init__(
        self,
        config: WatchConfiguration,
        provider: CredentialProvider | None = None,
        mailer: SmtpMailer | None = None,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ):
        self._config = config
        self._provider = provider or CredentialProvider(scope=config.persistence)
        self._mailer = mailer or SmtpMailer.from_config(config)
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None
        self._watch: ObservedWatch | None = None
        self._credential: Credential | None = None
        self._cancelled = threading.Event()
        self._state = WatcherState.INITIALIZING
        self._lock = threading.Lock()
        self._sent = 0
        self._failed = 0

    # ── Properties ─────────────────────────────────────────────

    @property
    def config(self) -> WatchConfiguration:
        """Effective configuration (addresses filled in after start)."""
        return self._config

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is WatcherState.RUNNING

    @property
    def sent_count(self) -> int:
        with self._lock:
            return self._sent

    @property
    def failed_count(self) -> int:
        with self._lock:
            return self._failed

    # ── Lifecycle ──────────────────────────────────────────────

    def start(self) -> bool:
        """Resolve credentials and subscribe.  False if startup failed."""
        if self._state is not WatcherState.INITIALIZING:
            raise WatchMailError(f"Watcher cannot start from state '{self._state.value}'")

        credential = self._provider.resolve(self._config.credential_id)
        if credential is None:
            logger.error(
                f"No credential for '{self._config.credential_id}'; not watching"
            )
            self._state = WatcherState.STOPPED
            return False
        if self._cancelled.is_set():
            logger.info("Cancelled before watching started")
            self._state = WatcherState.STOPPED
            return False
        self._credential = credential
        self._config = resolve_addresses(self._config, credential)

        try:
            self._subscribe()
        except SubscriptionError as e:
            hint = friendly_watch_error(e.__cause__ or e, str(self._config.root_path))
            logger.error(f"{e}\n{format_friendly_error(hint)}")
            self._state = WatcherState.STOPPED
            return False

        logger.info(
            f"Watching {self._config.root_path} "
            f"(recursive={self._config.recursive}, patterns={','.join(self._config.patterns)}); "
            f"notifying {self._config.recipient} via "
            f"{self._config.smtp_host}:{self._config.smtp_port}"
        )
        return True

    def cancel(self) -> None:
        """Ask ``run()`` to return.  Safe to call from any thread or signal handler."""
        self._cancelled.set()

    def stop(self) -> None:
        """Unsubscribe and mark the watcher stopped.  Idempotent."""
        was_running = self._state is WatcherState.RUNNING
        # Flip state first so events racing the unsubscribe are dropped
        self._state = WatcherState.STOPPED
        self._cancelled.set()
        self._unsubscribe()
        if was_running:
            logger.info(
                f"Stopped watching {self._config.root_path} "
                f"(sent={self.sent_count}, failed={self.failed_count})"
            )

    def wait(self) -> None:
        """Block until cancelled, then stop."""
        try:
            while not self._cancelled.wait(self._config.poll_interval):
                pass
        finally:
            self.stop()

    def run(self) -> bool:
        """Start, block until cancelled, then stop.

        Returns False if startup failed (no credential, or the folder
        could not be watched), True after a normal cancellation.
        """
        if not self.start():
            return False
        self.wait()
        return True

    def __enter__(self) -> "FolderWatcher":
        if not self.start():
            raise WatchMailError(f"Could not start watching {self._config.root}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ── Events ─────────────────────────────────────────────────

    def handle_event(self, event: FileEvent) -> bool:
        """Send one notification for ``event``.  Returns delivery success."""
        if self._state is not WatcherState.RUNNING or self._credential is None:
            logger.debug(f"Ignoring {event.path}: watcher is {self._state.value}")
            return False

        logger.info(f"New file: {event.path}")
        message = build_notification(
            event,
            sender=self._config.sender,
            recipient=self._config.recipient,
            root=self._config.root_path,
            subject_prefix=self._config.subject_prefix,
        )
        ok = self._mailer.send(message, self._credential)
        with self._lock:
            if ok:
                self._sent += 1
            else:
                self._failed += 1
        if not ok:
            logger.warning(f"Notification for {event.path} was not delivered")
        return ok

    # ── Subscription ───────────────────────────────────────────

    def _subscribe(self) -> None:
        root = self._config.root_path
        if not root.is_dir():
            raise SubscriptionError(f"{root} does not exist or is not a directory")

        handler = _CreationHandler(self, self._config.patterns)
        observer = self._observer_factory()
        try:
            self._watch = observer.schedule(
                handler, str(root), recursive=self._config.recursive
            )
            # Events can arrive as soon as the observer starts
            self._state = WatcherState.RUNNING
            observer.start()
        except OSError as e:
            self._state = WatcherState.STOPPED
            self._watch = None
            raise SubscriptionError(f"Cannot watch {root}: {e}") from e
        self._observer = observer

    def _unsubscribe(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        try:
            if self._watch is not None:
                observer.unschedule(self._watch)
        except Exception as e:
            logger.warning(f"Error unsubscribing from {self._config.root_path}: {e}")
        finally:
            self._watch = None
        try:
            observer.stop()
            observer.join(timeout=_JOIN_TIMEOUT)
        except Exception as e:
            logger.warning(f"Error stopping file observer: {e}")


def install_signal_handlers(watcher: FolderWatcher) -> dict[int, object]:
    """Route SIGINT/SIGTERM to ``watcher.cancel()``.

    Install only once the watcher is running: until then Ctrl+C has to
    reach the credential prompt as ``KeyboardInterrupt``.  Returns the
    previous handlers for ``restore_signal_handlers``.
    """

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down...", sig_name)
        watcher.cancel()

    previous: dict[int, object] = {}
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            previous[sig] = signal.signal(sig, _signal_handler)
        except (OSError, ValueError) as e:
            logger.debug(f"Cannot install {sig.name} handler: {e}")
    return previous


def restore_signal_handlers(previous: dict[int, object]) -> None:
    for sig, handler in previous.items():
        try:
            signal.signal(sig, handler)
        except (OSError, ValueError, TypeError) as e:
            logger.debug(f"Cannot restore handler for signal {sig}: {e}")
