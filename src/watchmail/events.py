"""File-creation events passed from the watcher to the mailer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class FileEvent:
    """A newly created file, as reported by the folder watcher."""

    path: Path
    detected_at: datetime

    @classmethod
    def now(cls, path: str | bytes | Path) -> "FileEvent":
        if isinstance(path, bytes):
            path = path.decode(errors="replace")
        return cls(path=Path(path).absolute(), detected_at=datetime.now().astimezone())
