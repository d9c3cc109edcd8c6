"""
Daylog Backend — Change Notifier
==================================

What:  Delivers "the record set changed" snapshots to live subscribers.
How:   Each subscription owns a bounded asyncio.Queue. publish() only enqueues
       (never awaits a subscriber), so the insert path is never blocked by a
       slow consumer. A per-subscription task drains the queue and calls the
       subscriber's callback, which may be a plain function or a coroutine
       function.
Who:   Owned by EntryStore; subscribers come from EntryStore.subscribe() and
       EntryStore.snapshots().

Delivery contract:
    1. The first item in every queue is the snapshot taken at subscribe time
    2. One snapshot per successful insert follows, in commit order
    3. When a queue is full, the oldest pending snapshot is dropped. Snapshots
       are full state, so the newest one always supersedes what was dropped.
    4. After unsubscribe() returns, no further callback is started. A callback
       that is already running is allowed to finish.

All methods must be called from the event loop that runs the store.
"""

import asyncio
import inspect
import itertools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple, Union

from daylog.schemas.entry import JournalEntry

logger = logging.getLogger(__name__)

Snapshot = Tuple[JournalEntry, ...]
SnapshotCallback = Callable[[Snapshot], Union[None, Awaitable[None]]]

# Queue sentinel that wakes a consumer after unsubscribe
_STOP: Any = object()

_subscription_ids = itertools.count(1)


class Subscription:
    """
    Handle for one live subscriber.

    Callback mode: created with a callback, a delivery task invokes it.
    Iterator mode: created without a callback, consumed with `async for`.

    Calling the subscription object is the same as calling unsubscribe().
    """

    def __init__(
        self,
        notifier: "ChangeNotifier",
        callback: Optional[SnapshotCallback],
        queue_size: int,
    ):
        self.id = next(_subscription_ids)
        self._notifier = notifier
        self._callback = callback
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._active = True
        self._task: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def active(self) -> bool:
        return self._active

    # ── Producer side ─────────────────────────────────────────────────────
    def _offer(self, item: Any) -> None:
        """Enqueue without waiting; evict the oldest pending item when full."""
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    def _deliver(self, snapshot: Snapshot) -> None:
        if self._active:
            self._offer(snapshot)

    # ── Callback mode ─────────────────────────────────────────────────────
    def _start(self) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(
            self._run(), name=f"daylog-subscription-{self.id}"
        )

    async def _run(self) -> None:
        while True:
            snapshot = await self._queue.get()
            # No await between this check and the callback call
            if snapshot is _STOP or not self._active:
                return
            try:
                result = self._callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning(
                    "Subscriber %d callback failed: %s", self.id, exc, exc_info=True
                )

    # ── Iterator mode ─────────────────────────────────────────────────────
    def __aiter__(self) -> AsyncIterator[Snapshot]:
        if self._callback is not None:
            raise TypeError("Callback subscriptions cannot be iterated")
        return self

    async def __anext__(self) -> Snapshot:
        if not self._active:
            raise StopAsyncIteration
        snapshot = await self._queue.get()
        if snapshot is _STOP or not self._active:
            raise StopAsyncIteration
        return snapshot

    # ── Teardown ──────────────────────────────────────────────────────────
    def unsubscribe(self) -> None:
        """Stop future emissions. Idempotent."""
        if not self._active:
            return
        self._active = False
        self._notifier._discard(self)
        self._offer(_STOP)
        logger.debug("Subscriber %d unsubscribed", self.id)

    __call__ = unsubscribe

    async def wait_closed(self) -> None:
        """
        Wait until the delivery task has exited.

        Must not be awaited from inside this subscription's own callback.
        """
        if self._task is not None:
            await self._task


class ChangeNotifier:
    """
    Registry of live subscriptions with non-blocking fan-out.

    Example:
        notifier = ChangeNotifier(queue_size=16)
        sub = notifier.subscribe((), callback=print)
        notifier.publish(snapshot)
        sub.unsubscribe()
    """

    def __init__(self, queue_size: int = 16):
        self.queue_size = queue_size
        self._subscriptions: Dict[int, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        initial_snapshot: Snapshot,
        callback: Optional[SnapshotCallback] = None,
    ) -> Subscription:
        """
        Register a subscriber whose first emission is `initial_snapshot`.

        With a callback, delivery starts in a background task on the running
        loop. Without one, the returned Subscription is an async iterator.
        """
        subscription = Subscription(self, callback, self.queue_size)
        subscription._offer(initial_snapshot)
        self._subscriptions[subscription.id] = subscription
        if callback is not None:
            subscription._start()
        logger.debug(
            "Subscriber %d registered (%d active)", subscription.id, self.subscriber_count
        )
        return subscription

    def publish(self, snapshot: Snapshot) -> None:
        """Hand `snapshot` to every active subscriber without waiting on any."""
        for subscription in list(self._subscriptions.values()):
            subscription._deliver(snapshot)

    def _discard(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    async def close(self) -> None:
        """Unsubscribe everyone and wait for in-flight deliveries to end."""
        subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            subscription.unsubscribe()
        for subscription in subscriptions:
            await subscription.wait_closed()
