"""Drains the event outbox to the webhook client, preserving per-channel order"""

import asyncio
import logging
import weakref
from typing import Callable, Set

import httpx
from sqlalchemy.orm import Session

from peerloan.infrastructure.clients.event_webhook import EventWebhookClient
from peerloan.infrastructure.database.repositories import OutboundEventRepository
from peerloan.utils.date_utils import utcnow

# One drain at a time per event loop, shared by every dispatcher instance
_drain_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = weakref.WeakKeyDictionary()


def _drain_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _drain_locks.get(loop)
    if lock is None:
        lock = _drain_locks[loop] = asyncio.Lock()
    return lock


class OutboxDispatcher:
    """
    At-least-once delivery of pending outbound events.

    Events are sent in id order. When a delivery fails the event stays
    pending and every later event on the same channel is held back until the
    next run, so one channel is never delivered out of order.

    Every API write schedules a drain, so runs are serialized: a run started
    while another is in flight waits for it and then only sees what is
    still pending.
    """

    def __init__(self, session_factory: Callable[[], Session], client: EventWebhookClient, batch_size: int = 100):
        self.session_factory = session_factory
        self.client = client
        self.batch_size = batch_size

    async def dispatch_pending(self) -> int:
        """Deliver what can be delivered now; returns the number delivered"""
        async with _drain_lock():
            return await self._drain()

    async def _drain(self) -> int:
        delivered = 0
        blocked: Set[str] = set()
        db = self.session_factory()
        try:
            for event in OutboundEventRepository(db).find_pending(limit=self.batch_size):
                if event.channel in blocked:
                    continue

                event.attempts += 1
                event.last_attempt_at = utcnow()
                try:
                    await self.client.send_event(event.channel, event.payload)
                except httpx.HTTPError as e:
                    blocked.add(event.channel)
                    event.last_error = str(e)
                    logging.warning(
                        f"Event delivery failed: {e}",
                        extra={"event_id": event.id, "channel": event.channel, "attempts": event.attempts},
                    )
                else:
                    event.status = "delivered"
                    event.last_error = None
                    delivered += 1
                db.commit()
        finally:
            db.close()
        return delivered
