"""Session-keyed publish/subscribe fan-out for live observers.

Architecture:
    classifier → SignalPipeline → EventLog.append
                                      ↓
                               Broadcaster.publish(signal)
                                      ↓
    observers  ←  Subscription queues (one per observer, keyed by session)

Delivery is best-effort and mirrors the durable log; it is a liveness aid,
not a correctness channel:
    - No replay.  A subscription only sees signals published after it was
      opened.  Late joiners read history from the EventLog.
    - publish() never blocks.  Each subscription owns a bounded queue; when
      it is full the OLDEST pending signal is dropped to make room.
    - FIFO per subscription.  Order across subscriptions is unspecified.
    - A failing subscription is logged and dropped; others are unaffected.

publish() is synchronous and runs on the event loop thread, so the
registry needs no lock: nothing can interleave with a fan-out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from integrity_monitor.domain.errors import DeliveryError
from integrity_monitor.domain.signal import Signal
from integrity_monitor.foundation.identifiers import new_signal_id

logger = logging.getLogger(__name__)

_CLOSED: Any = object()


class Subscription:
    """One observer's handle on a session's live signal stream.

    Iterate with ``async for signal in subscription``; iteration ends once
    the subscription is closed and its queue has been drained.
    """

    def __init__(self, broadcaster: "Broadcaster", session_id: str, maxsize: int) -> None:
        self.subscription_id = new_signal_id()
        self.session_id = session_id
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.delivered_count = 0
        self.dropped_count = 0

    # ── Delivery side ────────────────────────────────────────────────────

    def deliver(self, signal: Signal) -> None:
        """Enqueue without blocking, dropping the oldest item when full."""
        if self.closed:
            raise DeliveryError(self.subscription_id, "subscription closed")
        self._make_room()
        self._queue.put_nowait(signal)
        self.delivered_count += 1

    # ── Consumer side ────────────────────────────────────────────────────

    async def get(self) -> Signal:
        """Wait for the next signal.  Raises StopAsyncIteration once closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other waiter
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Signal:
        return await self.get()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop receiving.  Idempotent."""
        if self.closed:
            return
        self.closed = True
        self._broadcaster.unsubscribe(self)
        self._make_room()
        self._queue.put_nowait(_CLOSED)

    # ── Internals ────────────────────────────────────────────────────────

    def _make_room(self) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped_count += 1


class Broadcaster:
    """Explicit registry of subscriptions per session id."""

    def __init__(self, queue_size: int = 256) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._queue_size = queue_size
        self._subscriptions: dict[str, set[Subscription]] = {}

    # ── Registry ─────────────────────────────────────────────────────────

    def subscribe(self, session_id: str) -> Subscription:
        subscription = Subscription(self, session_id, self._queue_size)
        self._subscriptions.setdefault(session_id, set()).add(subscription)
        logger.info(
            "Observer %s subscribed to session %s (%d total)",
            subscription.subscription_id,
            session_id,
            self.subscriber_count(session_id),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove *subscription* from the registry.  Idempotent."""
        subs = self._subscriptions.get(subscription.session_id)
        if subs is None or subscription not in subs:
            return
        subs.discard(subscription)
        if not subs:
            del self._subscriptions[subscription.session_id]
        if not subscription.closed:
            subscription.close()
        logger.info(
            "Observer %s left session %s (%d remaining)",
            subscription.subscription_id,
            subscription.session_id,
            self.subscriber_count(subscription.session_id),
        )

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscriptions.get(session_id, ()))

    @property
    def total_subscribers(self) -> int:
        return sum(len(s) for s in self._subscriptions.values())

    # ── Fan-out ──────────────────────────────────────────────────────────

    def publish(self, signal: Signal) -> int:
        """Deliver *signal* to every current subscriber of its session.

        Returns the number of subscriptions that accepted it.  Never raises
        because of a subscriber.
        """
        delivered = 0
        dead: list[Subscription] = []

        for subscription in list(self._subscriptions.get(signal.session_id, ())):
            try:
                subscription.deliver(signal)
                delivered += 1
            except DeliveryError as exc:
                logger.warning("%s", exc)
                dead.append(subscription)
            except Exception as exc:
                logger.warning("%s", DeliveryError(subscription.subscription_id, str(exc)))
                dead.append(subscription)

        for subscription in dead:
            self.unsubscribe(subscription)
        return delivered
