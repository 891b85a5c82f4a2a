import datetime
import logging
from dataclasses import replace
from typing import Optional

from data_models import QueueItem, QueueSnapshot, QueueStore
from network import is_host

logger = logging.getLogger(__name__)


class QueueError(Exception):
    """Base class for rejected queue operations. The queue is left unchanged."""


class ValidationError(QueueError):
    reason = "invalid"


class InvalidReferenceError(ValidationError):
    reason = "invalid_reference"


class IndexOutOfRangeError(ValidationError):
    reason = "out_of_range"


class ReservedIndexError(ValidationError):
    reason = "reserved_index"


class AuthorityError(QueueError):
    """A guest tried to do something only the host may do."""


class QueueController:
    """Enqueue, advance, delete and snapshot over a QueueStore.

    Advance and delete are host-only; the caller's address is checked
    against ``host_address`` on every call.
    """

    def __init__(self, host_address: str, store: Optional[QueueStore] = None):
        self.host_address = host_address
        self.store = store if store is not None else QueueStore()

    def is_host(self, caller: str) -> bool:
        return is_host(caller, self.host_address)

    def _require_host(self, caller: str, action: str) -> None:
        if not self.is_host(caller):
            logger.info(f"Rejected {action} from non-host {caller}")
            raise AuthorityError(f"Only the host machine can {action}.")

    def enqueue(self, item: QueueItem) -> QueueItem:
        if not item.external_id and not item.source_url:
            raise InvalidReferenceError("Item has no media reference")

        stored = replace(item)
        if not stored.added_at:
            stored.added_at = datetime.datetime.now().strftime("%H:%M:%S")

        with self.store.locked() as store:
            store.items.append(stored)
            position = len(store.items) - 1
        logger.info(
            f"Added to queue at {position} (requester: {stored.requested_by}): {stored.title}"
        )
        return replace(stored)

    def advance(self, caller: str) -> Optional[QueueItem]:
        """Move the head of the queue into the playing slot.

        Returns None, and clears the playing slot, when the queue is empty.
        """
        self._require_host(caller, "control playback")
        with self.store.locked() as store:
            if not store.items:
                store.currently_playing = None
                logger.info("Queue is empty.")
                return None
            next_item = store.items.pop(0)
            store.currently_playing = next_item
        logger.info(f"Playing (host): {next_item.title}")
        return replace(next_item)

    def delete(self, index, caller: str) -> QueueItem:
        self._require_host(caller, "delete videos")
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexOutOfRangeError("Invalid index")
        if index == 0:
            # the head only leaves through advance
            raise ReservedIndexError("Invalid index")

        with self.store.locked() as store:
            if not 1 <= index < len(store.items):
                raise IndexOutOfRangeError("Invalid index")
            removed = store.items.pop(index)
        logger.info(f"Host removed video at {index}: {removed.title}")
        return removed

    def snapshot(self) -> QueueSnapshot:
        return self.store.snapshot()
