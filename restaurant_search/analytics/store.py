from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any

MAX_EVENTS = 1000


class SearchEventStore:
    """Bounded in-memory event log; the oldest events drop off first."""

    def __init__(self, max_events: int = MAX_EVENTS):
        self._events: deque[dict[str, Any]] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def record_event(self, event_type: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._events.append({
                "type": event_type,
                "timestamp": time.time(),
                **data,
            })

    def get_events(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._events)

    def clear_events(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
