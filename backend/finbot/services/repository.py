"""
In-memory repository for FinBot's recent-history buffers (news, event cards,
insights, alerts).

Items are held newest first in a bounded buffer: once the retention count is
exceeded the oldest item is dropped. This is plain ring-buffer behaviour, not
LRU, so reading an item never keeps it alive.

The worker gets one repository per record type injected, so nothing in the
core touches process-wide state.

Example usage:
    events = InMemoryRepository(retention=100)
    events.append(card)
    latest = events.list(limit=10)
    card = events.find('event_1700000000000_macro')
"""

import logging
from collections import deque
from typing import Callable, Deque, Generic, Iterable, Iterator, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _default_key(item) -> str:
    return item.id


class InMemoryRepository(Generic[T]):
    """
    Bounded newest-first store with lookup by key
    """

    def __init__(self, retention: int, key: Callable[[T], str] = _default_key, name: str = 'repository'):
        if retention <= 0:
            raise ValueError('retention must be positive')
        self.retention = retention
        self.name = name
        self._key = key
        self._items: Deque[T] = deque(maxlen=retention)

    def append(self, item: T) -> None:
        """Insert one item at the front, evicting the oldest when full"""
        if len(self._items) == self.retention:
            logger.debug(f"{self.name}: evicting oldest item")
        self._items.appendleft(item)

    def extend(self, items: Iterable[T]) -> None:
        """
        Insert a batch that is already ordered newest first, keeping that
        order at the front of the buffer.
        """
        for item in reversed(list(items)):
            self.append(item)

    def list(self, predicate: Optional[Callable[[T], bool]] = None, limit: Optional[int] = None) -> List[T]:
        """Items newest first, optionally filtered and capped"""
        results = []
        for item in self._items:
            if predicate is not None and not predicate(item):
                continue
            results.append(item)
            if limit is not None and len(results) >= limit:
                break
        return results

    def find(self, item_id: str) -> Optional[T]:
        for item in self._items:
            if self._key(item) == item_id:
                return item
        return None

    def contains(self, item_id: str) -> bool:
        return self.find(item_id) is not None

    def keys(self) -> List[str]:
        return [self._key(item) for item in self._items]

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))
