"""
Re-index queue.

Ordered, de-duplicating work queue of record source files that must be
(re)processed. High-priority entries are re-indexed; low-priority entries are
metadata-only updates and are served after all high-priority work.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ReindexPriority(str, Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class QueueEntry:
    path: Path
    priority: ReindexPriority


class ReindexQueue:
    """Thread-safe queue of source files; enqueueing a queued path is a no-op."""

    def __init__(self):
        self._lock = threading.Lock()
        self._queues: dict[ReindexPriority, OrderedDict[Path, None]] = {
            ReindexPriority.HIGH: OrderedDict(),
            ReindexPriority.LOW: OrderedDict(),
        }

    @staticmethod
    def _key(path: Path) -> Path:
        return Path(path).absolute()

    def add(self, path: Path, priority: ReindexPriority = ReindexPriority.HIGH) -> bool:
        """
        Enqueue a source file.

        A path queued with low priority is promoted when added with high
        priority.

        Returns:
            True if the queue changed
        """
        key = self._key(path)
        with self._lock:
            if key in self._queues[ReindexPriority.HIGH]:
                return False
            if key in self._queues[ReindexPriority.LOW]:
                if priority == ReindexPriority.LOW:
                    return False
                del self._queues[ReindexPriority.LOW][key]
            self._queues[priority][key] = None
        logger.info(f"Queued {key.name} for re-indexing ({priority.value} priority)")
        return True

    def poll(self) -> Optional[QueueEntry]:
        """Remove and return the next entry, high priority first."""
        with self._lock:
            for priority in (ReindexPriority.HIGH, ReindexPriority.LOW):
                queue = self._queues[priority]
                if queue:
                    path, _ = queue.popitem(last=False)
                    return QueueEntry(path=path, priority=priority)
        return None

    def entries(self) -> list[QueueEntry]:
        with self._lock:
            return [
                QueueEntry(path=path, priority=priority)
                for priority in (ReindexPriority.HIGH, ReindexPriority.LOW)
                for path in self._queues[priority]
            ]

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        key = self._key(Path(path))
        with self._lock:
            return any(key in queue for queue in self._queues.values())

    def __len__(self) -> int:
        with self._lock:
            return sum(len(queue) for queue in self._queues.values())

    def clear(self) -> None:
        with self._lock:
            for queue in self._queues.values():
                queue.clear()
