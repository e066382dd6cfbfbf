from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any, Iterator, List, Tuple

from ..core.models import Anomaly


logger = logging.getLogger(__name__)

Event = Tuple[str, Any]


def format_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


class EventBroadcaster:
    """Fans processor output out to Server-Sent Events subscribers.

    Each subscriber owns a bounded queue. Publishing never blocks: when a
    subscriber's queue is full the event is dropped for that subscriber.
    """

    def __init__(self, queue_size: int = 256, keepalive_sec: float = 15.0) -> None:
        self._queue_size = queue_size
        self._keepalive_sec = keepalive_sec
        self._lock = threading.Lock()
        self._subscribers: List["queue.Queue[Event]"] = []

    def subscribe(self) -> "queue.Queue[Event]":
        q: "queue.Queue[Event]" = queue.Queue(maxsize=self._queue_size)
        with self._lock:
            self._subscribers.append(q)
        logger.info("Client connected", extra={"subscribers": self.subscriber_count()})
        return q

    def unsubscribe(self, q: "queue.Queue[Event]") -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)
        logger.info("Client disconnected", extra={"subscribers": self.subscriber_count()})

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: str, data: Any) -> int:
        """Queue an event for every subscriber; returns how many accepted it."""
        with self._lock:
            targets = list(self._subscribers)
        delivered = 0
        for q in targets:
            try:
                q.put_nowait((event, data))
                delivered += 1
            except queue.Full:
                logger.debug("Dropping %s event for slow subscriber", event)
        return delivered

    # AnomalySink
    def on_anomalies(self, anomalies: List[Anomaly]) -> None:
        self.publish("anomalies", [a.to_wire() for a in anomalies])

    def on_active_sessions(self, session_ids: List[str]) -> None:
        self.publish("activeSessions", list(session_ids))

    def stream(self, q: "queue.Queue[Event]") -> Iterator[str]:
        """Yield SSE frames from ``q`` until the client goes away."""
        try:
            yield ": connected\n\n"
            while True:
                try:
                    event, data = q.get(timeout=self._keepalive_sec)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield format_sse(event, data)
        finally:
            self.unsubscribe(q)
