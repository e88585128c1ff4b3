"""Event bus implementations: in-process fan-out and a database outbox"""

import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Protocol

from sqlalchemy.orm import Session

from peerloan.infrastructure.database.repositories import OutboundEventRepository

Subscriber = Callable[[str, Dict[str, Any]], None]


class EventBus(Protocol):
    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        ...


class InMemoryEventBus:
    """
    Synchronous in-process bus.

    Publishing is serialized so that events on one channel are stored and
    delivered to subscribers in publish order.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)

    def subscribe(self, channel: str, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers[channel].append(callback)

    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._events[channel].append(payload)
            subscribers = list(self._subscribers[channel])
            for callback in subscribers:
                callback(channel, payload)

    def events(self, channel: str) -> List[Dict[str, Any]]:
        """Payloads published on a channel, oldest first"""
        with self._lock:
            return list(self._events.get(channel, []))


class OutboxEventBus:
    """
    Appends events to the outbound_events table in a session of its own.

    The outbox is written after the triggering mutation has committed, so a
    failure here never rolls that mutation back.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        db = self.session_factory()
        try:
            OutboundEventRepository(db).add(channel, payload)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
