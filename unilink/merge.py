"""
Ordered local lists that absorb optimistic placeholders and pushed records.

A locally created item lives under a temporary id until either the write
returns (``confirm``) or the realtime insert for it arrives (``merge_insert``).
Whichever comes first replaces the placeholder, so the list never shows the
same entity twice.
"""
import logging
import uuid
from datetime import timedelta
from typing import Callable, Dict, Generic, Iterator, List, Optional, TypeVar

from unilink.config import Config

logger = logging.getLogger(__name__)

T = TypeVar("T")

NEWEST_FIRST = "newest_first"
OLDEST_FIRST = "oldest_first"

TEMP_PREFIX = "temp-"


def new_temp_id() -> str:
    return f"{TEMP_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(item_id: str) -> bool:
    return str(item_id).startswith(TEMP_PREFIX)


class LiveList(Generic[T]):
    """Id-keyed list ordered by ``created_at``."""

    def __init__(self, order: str = NEWEST_FIRST, author_field: str = "user_id",
                 accepts: Optional[Callable[[T], bool]] = None,
                 match_window: Optional[float] = None):
        if order not in (NEWEST_FIRST, OLDEST_FIRST):
            raise ValueError(f"Unknown order: {order}")
        self.order = order
        self.author_field = author_field
        self.accepts = accepts
        self.match_window = timedelta(seconds=match_window if match_window is not None
                                      else Config.PLACEHOLDER_MATCH_WINDOW)
        self._items: Dict[str, T] = {}
        self._placeholders: List[str] = []
        self._listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # reading
    # ------------------------------------------------------------------

    def items(self) -> List[T]:
        ordered = sorted(self._items.values(), key=lambda item: (item.created_at, str(item.id)))
        if self.order == NEWEST_FIRST:
            ordered.reverse()
        return ordered

    def __iter__(self) -> Iterator[T]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    def get(self, item_id: str) -> Optional[T]:
        return self._items.get(item_id)

    @property
    def pending(self) -> List[str]:
        return list(self._placeholders)

    # ------------------------------------------------------------------
    # change notification
    # ------------------------------------------------------------------

    def on_change(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    # local writes
    # ------------------------------------------------------------------

    def reset(self, items: List[T]) -> None:
        """Replace the confirmed contents after a fetch; in-flight placeholders are kept."""
        kept = {pid: self._items[pid] for pid in self._placeholders if pid in self._items}
        self._items = {item.id: item for item in items}
        self._items.update(kept)
        self._changed()

    def put(self, item: T) -> Optional[T]:
        """Insert or replace ``item``; returns the previous value."""
        previous = self._items.get(item.id)
        self._items[item.id] = item
        self._changed()
        return previous

    def remove(self, item_id: str) -> Optional[T]:
        previous = self._items.pop(item_id, None)
        if item_id in self._placeholders:
            self._placeholders.remove(item_id)
        if previous is not None:
            self._changed()
        return previous

    def add_placeholder(self, item: T) -> str:
        self._items[item.id] = item
        self._placeholders.append(item.id)
        self._changed()
        return item.id

    def confirm(self, temp_id: str, record: T) -> None:
        """Swap the placeholder for the stored record (no-op if realtime already did)."""
        self._items.pop(temp_id, None)
        if temp_id in self._placeholders:
            self._placeholders.remove(temp_id)
        self._items[record.id] = record
        self._changed()

    def discard(self, temp_id: str) -> None:
        self.remove(temp_id)

    # ------------------------------------------------------------------
    # pushed changes
    # ------------------------------------------------------------------

    def _matching_placeholder(self, record: T) -> Optional[str]:
        for temp_id in self._placeholders:
            candidate = self._items.get(temp_id)
            if candidate is None:
                continue
            if getattr(candidate, self.author_field, None) != getattr(record, self.author_field, None):
                continue
            if getattr(candidate, "content", None) != getattr(record, "content", None):
                continue
            if abs(candidate.created_at - record.created_at) <= self.match_window:
                return temp_id
        return None

    def merge_insert(self, record: T) -> bool:
        """
        Fold a pushed insert into the list.

        Returns:
            bool: True if a new visible entry was added
        """
        if self.accepts is not None and not self.accepts(record):
            logger.debug(f"Dropping out-of-scope record {record.id}")
            return False

        if record.id in self._items:
            self._items[record.id] = record
            self._changed()
            return False

        temp_id = self._matching_placeholder(record)
        if temp_id is not None:
            self.confirm(temp_id, record)
            return False

        self._items[record.id] = record
        self._changed()
        return True

    def merge_update(self, record: T) -> bool:
        if record.id not in self._items:
            return False
        if self.accepts is not None and not self.accepts(record):
            return False
        self._items[record.id] = record
        self._changed()
        return True

    def merge_delete(self, item_id: str) -> bool:
        return self.remove(item_id) is not None
