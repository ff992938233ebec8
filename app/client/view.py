"""
In-memory view of one user's bookmarks, reconciled from API responses and
change-feed events.
"""

import logging
from datetime import timezone
from typing import Dict, Iterable, List, Optional, Set, Union

from pydantic import TypeAdapter

from app.schemas.bookmark import (
    BookmarkDeleted,
    BookmarkEvent,
    BookmarkInserted,
    BookmarkRead,
)

logger = logging.getLogger(__name__)

_event_adapter = TypeAdapter(BookmarkEvent)


def _sort_key(bookmark: BookmarkRead):
    created_at = bookmark.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (created_at, bookmark.id)


class BookmarkView:
    """Ordered by ``created_at`` descending and keyed by ``id``.

    Every merge is idempotent, so the same record arriving both as the direct
    API response and as a feed event is applied once.
    """

    def __init__(self, bookmarks: Optional[Iterable[BookmarkRead]] = None):
        self._items: List[BookmarkRead] = []
        self._by_id: Dict[str, BookmarkRead] = {}
        # ids already deleted, so a late duplicate insert cannot resurrect them
        self._deleted: Set[str] = set()
        if bookmarks is not None:
            self.load(bookmarks)

    @property
    def bookmarks(self) -> List[BookmarkRead]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, bookmark_id: str) -> bool:
        return bookmark_id in self._by_id

    def load(self, bookmarks: Iterable[Union[BookmarkRead, dict]]):
        """Replace the view with a fresh snapshot from the list endpoint"""
        records = [BookmarkRead.model_validate(b) for b in bookmarks]
        self._by_id = {record.id: record for record in records}
        self._items = sorted(self._by_id.values(), key=_sort_key, reverse=True)
        self._deleted.clear()

    def apply_insert(self, record: Union[BookmarkRead, dict]) -> bool:
        record = BookmarkRead.model_validate(record)
        if record.id in self._by_id or record.id in self._deleted:
            return False
        key = _sort_key(record)
        position = 0
        # Newest records land at the front, which is the common case
        while position < len(self._items) and _sort_key(self._items[position]) > key:
            position += 1
        self._items.insert(position, record)
        self._by_id[record.id] = record
        return True

    def apply_delete(self, bookmark_id: str) -> bool:
        self._deleted.add(bookmark_id)
        record = self._by_id.pop(bookmark_id, None)
        if record is None:
            return False
        self._items.remove(record)
        return True

    def apply_event(self, event: Union[BookmarkEvent, dict]) -> bool:
        """Apply one feed frame; returns True when the view changed"""
        if isinstance(event, dict):
            if event.get("type") not in ("insert", "delete"):
                return False
            event = _event_adapter.validate_python(event)
        if isinstance(event, BookmarkInserted):
            return self.apply_insert(event.record)
        if isinstance(event, BookmarkDeleted):
            return self.apply_delete(event.id)
        logger.warning(f"Ignoring unknown feed event: {event!r}")
        return False
