"""Unit tests for the in-process event bus and the unit of work's publish rules"""

import threading
import pytest
from unittest.mock import MagicMock

from peerloan.domain.events import interest_received_channel, request_updated_channel
from peerloan.infrastructure.events.bus import InMemoryEventBus
from peerloan.services.unit_of_work import UnitOfWork

pytestmark = pytest.mark.unit


def test_channel_names():
    assert request_updated_channel("abc") == "LOAN_REQUEST_UPDATED.abc"
    assert interest_received_channel("user-9") == "LOAN_INTEREST_RECEIVED.user-9"


def test_publish_keeps_order_per_channel():
    bus = InMemoryEventBus()
    for i in range(5):
        bus.publish("A", {"seq": i})
    bus.publish("B", {"seq": 99})

    assert [event["seq"] for event in bus.events("A")] == [0, 1, 2, 3, 4]
    assert bus.events("B") == [{"seq": 99}]
    assert bus.events("missing") == []


def test_subscribers_receive_events_on_their_channel():
    bus = InMemoryEventBus()
    received = []
    bus.subscribe("A", lambda channel, payload: received.append((channel, payload)))

    bus.publish("A", {"n": 1})
    bus.publish("B", {"n": 2})

    assert received == [("A", {"n": 1})]


def test_concurrent_publishers_do_not_lose_events():
    bus = InMemoryEventBus()

    def publish_many(offset):
        for i in range(200):
            bus.publish("C", {"n": offset + i})

    threads = [threading.Thread(target=publish_many, args=(k * 1000,)) for k in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    events = bus.events("C")
    assert len(events) == 800
    # Each publisher's own events stay in its publish order
    for k in range(4):
        own = [e["n"] for e in events if k * 1000 <= e["n"] < (k + 1) * 1000]
        assert own == sorted(own)


def test_events_are_released_only_after_commit():
    db = MagicMock()
    bus = InMemoryEventBus()
    uow = UnitOfWork(db, bus)

    with uow.transaction():
        uow.emit("A", {"n": 1})
        assert bus.events("A") == []

    db.commit.assert_called_once()
    assert bus.events("A") == [{"n": 1}]


def test_rolled_back_transaction_publishes_nothing():
    db = MagicMock()
    bus = InMemoryEventBus()
    uow = UnitOfWork(db, bus)

    with pytest.raises(RuntimeError):
        with uow.transaction():
            uow.emit("A", {"n": 1})
            raise RuntimeError("boom")

    db.rollback.assert_called_once()
    db.commit.assert_not_called()
    assert bus.events("A") == []


def test_nested_transaction_commits_once():
    db = MagicMock()
    uow = UnitOfWork(db, InMemoryEventBus())

    with uow.transaction():
        with uow.transaction():
            uow.emit("A", {"n": 1})
        db.commit.assert_not_called()

    db.commit.assert_called_once()


def test_publish_failure_does_not_raise():
    """A failing bus is logged and counted; the committed work stands"""
    db = MagicMock()
    bus = MagicMock()
    bus.publish.side_effect = ConnectionError("bus down")
    uow = UnitOfWork(db, bus)

    with uow.transaction():
        uow.emit("A", {"n": 1})

    db.commit.assert_called_once()
    bus.publish.assert_called_once_with("A", {"n": 1})


def test_commit_callbacks_wait_for_outermost_commit():
    db = MagicMock()
    uow = UnitOfWork(db, InMemoryEventBus())
    callback = MagicMock()

    with uow.transaction():
        with uow.transaction():
            uow.on_commit(callback)
        callback.assert_not_called()

    callback.assert_called_once()


def test_failed_commit_drops_callbacks():
    db = MagicMock()
    db.commit.side_effect = RuntimeError("commit failed")
    uow = UnitOfWork(db, InMemoryEventBus())
    callback = MagicMock()

    with pytest.raises(RuntimeError):
        with uow.transaction():
            uow.on_commit(callback)

    db.rollback.assert_called_once()
    callback.assert_not_called()

    # A later successful transaction does not replay the dropped callback
    db.commit.side_effect = None
    with uow.transaction():
        pass
    callback.assert_not_called()
