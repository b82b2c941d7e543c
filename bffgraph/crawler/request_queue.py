"""
Request queue for pending friend-page fetches.
Implements three priority tiers with FIFO order inside each tier.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, Iterator, Optional


class Priority(Enum):
    """Fetch priority levels."""
    LOW = 1      # first page of a profile not yet started
    NORMAL = 2   # continuation page of a started profile
    HIGH = 3     # re-fetch after a failed request


@dataclass(frozen=True)
class FetchTask:
    """A single friend-list page to fetch."""
    profile_id: int
    page: int
    priority: Priority = Priority.LOW

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and debugging."""
        return {
            'profile_id': self.profile_id,
            'page': self.page,
            'priority': self.priority.name.lower()
        }


class PriorityQueue:
    """
    Three-tier FIFO queue of fetch tasks.

    dequeue() always serves HIGH before NORMAL before LOW. Within a tier,
    tasks come out in the order they went in. The queue never blocks; an
    empty queue returns None.
    """

    # Dispatch order, highest first
    TIERS = (Priority.HIGH, Priority.NORMAL, Priority.LOW)

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._tiers: Dict[Priority, Deque[FetchTask]] = {
            priority: deque() for priority in self.TIERS
        }

    def enqueue(self, task: FetchTask):
        """Append a task to the tail of its priority tier."""
        self._tiers[task.priority].append(task)

    def dequeue(self) -> Optional[FetchTask]:
        """Remove and return the head of the highest non-empty tier."""
        for priority in self.TIERS:
            queue = self._tiers[priority]
            if queue:
                return queue.popleft()
        return None

    def is_empty(self) -> bool:
        return all(not queue for queue in self._tiers.values())

    def clear(self):
        """Drop every queued task."""
        dropped = len(self)
        for queue in self._tiers.values():
            queue.clear()
        if dropped:
            self.logger.info(f"Cleared {dropped} queued fetch tasks")

    def sizes(self) -> Dict[str, int]:
        """Per-tier queue lengths."""
        return {priority.name.lower(): len(queue) for priority, queue in self._tiers.items()}

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._tiers.values())

    def __iter__(self) -> Iterator[FetchTask]:
        """Iterate over queued tasks in dispatch order without removing them."""
        for priority in self.TIERS:
            yield from self._tiers[priority]
