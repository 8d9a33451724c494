# src/pipeline/progress.py — v1
"""Bounded progress channel with drop-oldest overflow.

A slow or absent reader never blocks the pipeline: once the queue is full
the oldest event is discarded. An optional callback is invoked
synchronously on publish; its failures are logged and never propagated.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

from docmapper.core.models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class ProgressChannel:
    """Bounded FIFO of ProgressEvents.

    Args:
        maxsize: Queue capacity.
        callback: Optional synchronous subscriber.
    """

    def __init__(self, maxsize: int = 100, callback: ProgressCallback | None = None) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._events: deque[ProgressEvent] = deque(maxlen=maxsize)
        self._lock = threading.Lock()
        self._callback = callback
        self.dropped = 0
        self.published = 0

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            if len(self._events) == self._events.maxlen:
                self.dropped += 1
            self._events.append(event)
            self.published += 1
        if self._callback is not None:
            try:
                self._callback(event)
            except Exception:  # noqa: BLE001
                logger.exception("Progress callback failed")

    def drain(self) -> list[ProgressEvent]:
        """Remove and return every queued event, oldest first."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    @property
    def latest(self) -> ProgressEvent | None:
        with self._lock:
            return self._events[-1] if self._events else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
