# core/window.py
"""
Bounded sample storage: the capped most-recent-N window consumed by
render/export/analysis, and the pending queue that absorbs notification
bursts between flush ticks.
"""

import logging
from collections import deque
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import numpy as np

from core.errors import InvalidParameter
from core.models import Sample

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 5000
DEFAULT_PENDING_LIMIT = 1000
RENDER_WINDOW = 250


class OrderingPolicy(Enum):
    """What append() does with a sample older than the last retained one"""
    ACCEPT = "accept"   # keep as-is
    CLAMP = "clamp"     # re-stamp with the last retained time
    REJECT = "reject"   # drop it


class SampleWindow:
    """Append-only FIFO window holding at most `capacity` samples."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY,
                 ordering: OrderingPolicy = OrderingPolicy.CLAMP,
                 render_window: int = RENDER_WINDOW):
        if capacity < 1:
            raise InvalidParameter(f"capacity must be >= 1, got {capacity}")
        self.capacity = int(capacity)
        self.ordering = OrderingPolicy(ordering)
        self.render_window = int(render_window)
        self._samples = deque(maxlen=self.capacity)
        self.rejected = 0
        self.clamped = 0

    def __len__(self):
        return len(self._samples)

    @property
    def last_time(self) -> Optional[int]:
        return self._samples[-1].time if self._samples else None

    def append(self, sample: Sample) -> bool:
        """Add one sample; returns False if the ordering policy dropped it."""
        last = self.last_time
        if last is not None and sample.time < last:
            if self.ordering is OrderingPolicy.REJECT:
                self.rejected += 1
                logger.debug(f"Rejected out-of-order sample t={sample.time} < {last}")
                return False
            if self.ordering is OrderingPolicy.CLAMP:
                self.clamped += 1
                sample = Sample(time=last, voltage=sample.voltage)
        self._samples.append(sample)
        return True

    def extend(self, samples: Iterable[Sample]) -> int:
        return sum(1 for s in samples if self.append(s))

    def snapshot(self) -> Tuple[Sample, ...]:
        """Full retained sequence, oldest first"""
        return tuple(self._samples)

    def tail(self, n: Optional[int] = None) -> Tuple[Sample, ...]:
        """Most recent n samples (default render_window), oldest first"""
        if n is None:
            n = self.render_window
        if n <= 0:
            return ()
        start = max(0, len(self._samples) - n)
        return tuple(self._samples[i] for i in range(start, len(self._samples)))

    def voltages(self) -> np.ndarray:
        return np.fromiter((s.voltage for s in self._samples), dtype=float, count=len(self._samples))

    def times(self) -> np.ndarray:
        return np.fromiter((s.time for s in self._samples), dtype=np.int64, count=len(self._samples))

    def reset(self):
        self._samples.clear()
        self.rejected = 0
        self.clamped = 0


class PendingQueue:
    """
    Bounded FIFO between the notification handler and the flush tick.
    When full, the oldest pending sample is discarded and counted.
    """

    def __init__(self, limit: int = DEFAULT_PENDING_LIMIT):
        if limit < 1:
            raise InvalidParameter(f"limit must be >= 1, got {limit}")
        self.limit = int(limit)
        self._queue = deque()
        self.dropped = 0

    def __len__(self):
        return len(self._queue)

    def push(self, sample: Sample):
        if len(self._queue) >= self.limit:
            self._queue.popleft()
            self.dropped += 1
        self._queue.append(sample)

    def push_many(self, samples: Iterable[Sample]):
        for s in samples:
            self.push(s)

    def drain(self) -> List[Sample]:
        out = list(self._queue)
        self._queue.clear()
        return out

    def clear(self):
        self._queue.clear()
        self.dropped = 0
