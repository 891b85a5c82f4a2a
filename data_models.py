import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, List, Optional

DEFAULT_VIDEO_TITLE = "Untitled video"
DEFAULT_TRACK_TITLE = "Unknown track"
DEFAULT_ARTIST = "Unknown"


class ItemKind(str, Enum):
    VIDEO_LINK = "video-link"
    LIBRARY_TRACK = "library-track"


# --- Data Structure ---
@dataclass
class QueueItem:
    kind: ItemKind
    title: str
    external_id: Optional[str] = None
    source_url: Optional[str] = None
    artist: Optional[str] = None
    cover_reference: Optional[str] = None
    requested_by: Optional[str] = None
    username: Optional[str] = None
    added_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "externalId": self.external_id,
            "sourceUrl": self.source_url,
            "title": self.title,
            "artist": self.artist,
            "coverReference": self.cover_reference,
            "requestedBy": self.requested_by,
            "username": self.username,
            "addedAt": self.added_at,
        }


@dataclass
class QueueSnapshot:
    queue: List[QueueItem] = field(default_factory=list)
    currently_playing: Optional[QueueItem] = None

    def to_dict(self) -> dict:
        return {
            "queue": [item.to_dict() for item in self.queue],
            "currentlyPlaying": (
                self.currently_playing.to_dict() if self.currently_playing else None
            ),
        }


class QueueStore:
    """The queue plus the currently playing slot, behind one lock.

    Callers must hold ``locked()`` for every read or write of ``items`` and
    ``currently_playing``. Each store is independent, so tests can create
    as many as they like.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.items: List[QueueItem] = []
        self.currently_playing: Optional[QueueItem] = None

    @contextmanager
    def locked(self) -> Iterator["QueueStore"]:
        with self._lock:
            yield self

    def snapshot(self) -> QueueSnapshot:
        with self._lock:
            return QueueSnapshot(
                queue=[replace(item) for item in self.items],
                currently_playing=(
                    replace(self.currently_playing) if self.currently_playing else None
                ),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self.items)
