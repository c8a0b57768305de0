"""Refresh Bus — broadcast re-run trigger for the catalog pipeline.

Invariants:
    - Every new subscription yields one tick immediately (replay-one on subscribe)
    - trigger() wakes every live subscription; never blocks, never raises
    - Ticks coalesce: any number of triggers while a run is in flight -> exactly one more tick
    - A closed subscription stops iterating after its current tick

Design Decisions:
    - One asyncio.Event per subscription as a single-slot signal: set() is idempotent,
      which is exactly the coalescing rule, and no queue can grow unbounded
    - Async iterator interface: the pipeline is just `async for _ in subscription`
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class RefreshSubscription:
    """Single-slot tick channel owned by one consumer."""

    def __init__(self, bus: "RefreshBus"):
        self._bus = bus
        self._pending = asyncio.Event()
        self._pending.set()  # replay-one: first run needs no trigger
        self._closed = False

    def notify(self) -> None:
        self._pending.set()

    def close(self) -> None:
        self._closed = True
        self._bus.unsubscribe(self)
        self._pending.set()  # release a waiting consumer

    def __aiter__(self):
        return self

    async def __anext__(self) -> None:
        if self._closed:
            raise StopAsyncIteration
        await self._pending.wait()
        if self._closed:
            raise StopAsyncIteration
        self._pending.clear()


class RefreshBus:
    """Fan-out trigger; each subscriber re-runs its pipeline from scratch per tick."""

    def __init__(self):
        self._subscriptions: list[RefreshSubscription] = []
        self.trigger_count = 0

    def subscribe(self) -> RefreshSubscription:
        subscription = RefreshSubscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: RefreshSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def trigger(self) -> None:
        self.trigger_count += 1
        logger.debug(
            "Refresh triggered (%d subscriber(s))", len(self._subscriptions),
        )
        for subscription in list(self._subscriptions):
            subscription.notify()
