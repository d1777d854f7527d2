"""Storage for the human verification backlog."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from app.models.queue import VerificationQueueItem

logger = logging.getLogger("pipelines.queue")


class VerificationQueue(Protocol):
    def add(self, item: VerificationQueueItem) -> VerificationQueueItem: ...

    def list_sorted(self) -> list[VerificationQueueItem]: ...

    def remove(self, item_id: str) -> VerificationQueueItem | None: ...

    def __len__(self) -> int: ...


class InMemoryVerificationQueue:
    """Thread-safe in-process queue.

    Items are listed highest priority first, then newest first. Insertion order breaks ties
    between items created within the same clock tick.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, tuple[int, VerificationQueueItem]] = {}
        self._sequence = 0

    def add(self, item: VerificationQueueItem) -> VerificationQueueItem:
        with self._lock:
            self._sequence += 1
            self._items[item.id] = (self._sequence, item)
            depth = len(self._items)
        logger.info(
            "queue.enqueued",
            extra={
                "item_id": item.id,
                "type": item.type.value,
                "priority": item.priority.value,
                "company": item.company_name,
                "depth": depth,
            },
        )
        return item

    def list_sorted(self) -> list[VerificationQueueItem]:
        with self._lock:
            entries = list(self._items.values())
        entries.sort(key=lambda entry: (entry[1].priority.rank, entry[1].created_at, entry[0]), reverse=True)
        return [item for _, item in entries]

    def remove(self, item_id: str) -> VerificationQueueItem | None:
        with self._lock:
            entry = self._items.pop(item_id, None)
        return entry[1] if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
