# log_watchdog/watchdog/events.py

"""
File changes as seen by the supervisor
"""
import os
import time
from enum import Enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from watchdog.events import (
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
)


class ChangeKind(Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"
    CLOSED = "closed"


_KINDS = (
    (FileMovedEvent, ChangeKind.MOVED),
    (FileCreatedEvent, ChangeKind.CREATED),
    (FileModifiedEvent, ChangeKind.MODIFIED),
    (FileDeletedEvent, ChangeKind.DELETED),
    (FileClosedEvent, ChangeKind.CLOSED),
)


@dataclass(frozen=True)
class FileChange:
    """
    A change to a file in a watched log directory

    The change only says that a file may have grown; the tailer always
    re-reads from its own offset.
    """
    kind: ChangeKind
    path: Path
    dest_path: Optional[Path] = None
    observed_at: float = field(default_factory=time.time)

    @classmethod
    def from_fs_event(cls, event: FileSystemEvent) -> Optional["FileChange"]:
        """Convert an observer event, or return None for directories and unknown kinds"""
        if event.is_directory:
            return None

        for event_class, kind in _KINDS:
            if isinstance(event, event_class):
                break
        else:
            return None

        dest = getattr(event, "dest_path", None)
        return cls(
            kind=kind,
            path=Path(os.fsdecode(event.src_path)),
            dest_path=Path(os.fsdecode(dest)) if dest else None,
        )

    @property
    def is_rotation(self) -> bool:
        """The file was moved away or removed, as log rotation does"""
        return self.kind in (ChangeKind.MOVED, ChangeKind.DELETED)

    def affected_paths(self) -> List[Path]:
        # A rename can both empty the old name and fill the new one
        if self.dest_path is not None:
            return [self.path, self.dest_path]
        return [self.path]

    def __str__(self):
        if self.dest_path:
            return f"{self.kind.value} {self.path} -> {self.dest_path}"
        return f"{self.kind.value} {self.path}"
