"""Transaction boundary shared by the lifecycle services"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from peerloan.domain.exceptions import AuthenticationError, ConflictError, NotFoundError
from peerloan.domain.models import Caller
from peerloan.infrastructure.events.bus import EventBus
from peerloan.infrastructure.observability.logging import log_transition
from peerloan.infrastructure.observability.metrics import (
    conflict_counter,
    event_publish_failure_counter,
    record_transition,
)

Transition = Tuple[str, Any, Optional[str], str, Optional[str]]


class UnitOfWork:
    """
    One database session plus the side effects that follow a commit.

    Transitions are logged and events published only once the surrounding
    transaction has committed. A rolled-back operation leaves no trace in
    either. Nested `transaction()` blocks join the outermost one.
    """

    def __init__(self, db: Session, event_bus: Optional[EventBus] = None):
        self.db = db
        self.event_bus = event_bus
        self._depth = 0
        self._events: List[Tuple[str, Dict[str, Any]]] = []
        self._transitions: List[Transition] = []
        self._callbacks: List[Callable[[], None]] = []

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        self._depth += 1
        if self._depth > 1:
            try:
                yield self.db
            finally:
                self._depth -= 1
            return

        try:
            yield self.db
            self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            self._discard()
            conflict_counter.inc()
            logging.warning(f"Concurrent modification or duplicate record: {e}")
            raise ConflictError("Record was modified concurrently or already exists; retry the operation") from e
        except Exception:
            self.db.rollback()
            self._discard()
            raise
        finally:
            self._depth -= 1

        self._release()

    def record_transition(
        self, record_type: str, record_id: Any, from_status: Optional[str], to_status: str, actor_id: Optional[str]
    ) -> None:
        self._transitions.append((record_type, record_id, from_status, to_status, actor_id))

    def emit(self, channel: str, payload: Dict[str, Any]) -> None:
        """Queue an event for publication after commit"""
        self._events.append((channel, payload))

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run a callback once the outermost transaction has committed"""
        self._callbacks.append(callback)

    def _discard(self) -> None:
        self._events.clear()
        self._transitions.clear()
        self._callbacks.clear()

    def _release(self) -> None:
        transitions, self._transitions = self._transitions, []
        events, self._events = self._events, []
        callbacks, self._callbacks = self._callbacks, []

        for record_type, record_id, from_status, to_status, actor_id in transitions:
            log_transition(record_type, record_id, from_status, to_status, actor_id)
            record_transition(record_type, to_status)

        for callback in callbacks:
            callback()

        for channel, payload in events:
            self._publish(channel, payload)

    def _publish(self, channel: str, payload: Dict[str, Any]) -> None:
        """Best-effort notify: the committed mutation stands whatever happens here"""
        if self.event_bus is None:
            return
        try:
            self.event_bus.publish(channel, payload)
        except Exception as e:
            event_publish_failure_counter.inc()
            logging.error(f"Event publish failed: {e}", extra={"channel": channel})


def require_caller(caller: Optional[Caller]) -> Caller:
    if caller is None or not caller.user_id:
        raise AuthenticationError("Authentication required")
    return caller


def require_found(record, message: str):
    if record is None:
        raise NotFoundError(message)
    return record
