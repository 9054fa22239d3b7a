from __future__ import annotations

import logging
from collections import deque
from typing import Generic, Iterator, List, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class BoundedQueue(Generic[T]):
    """Bounded FIFO that drops its oldest item on overflow.

    Not awaitable: it is only touched from a single call's event loop, so
    puts and drains never interleave.
    """

    def __init__(self, maxsize: int):
        if maxsize <= 0:
            raise ValueError(f"maxsize must be positive, got {maxsize}")
        self._queue: deque[T] = deque()
        self._maxsize = maxsize
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[T]:
        return iter(self._queue)

    def put(self, item: T) -> bool:
        """Append an item. Returns False when the oldest item was dropped to make room."""
        if len(self._queue) < self._maxsize:
            self._queue.append(item)
            return True

        self.dropped += 1
        self._queue.popleft()
        self._queue.append(item)
        logger.warning("queue_overflow maxsize=%s dropped=%s", self._maxsize, self.dropped)
        return False

    def drain(self) -> List[T]:
        """Remove and return every queued item in FIFO order."""
        items = list(self._queue)
        self._queue.clear()
        return items

    def clear(self) -> int:
        """Remove all queued items. Returns the number removed."""
        n = len(self._queue)
        self._queue.clear()
        return n
