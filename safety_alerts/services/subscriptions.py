"""
Live query subscriptions with snapshot-replace semantics.

Every emission is the full current result set; consumers replace whatever
they held before. cancel() is synchronous: once it returns no further
snapshot is delivered.
"""

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable, Generic, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription(Generic[T]):
    """
    Wraps a Firestore `on_snapshot` watch.

    Args:
        query: Firestore query (or mock) supporting on_snapshot
        transform: maps the raw document snapshots to the emitted items
        callback: receives each emitted list
    """

    def __init__(
        self,
        query,
        transform: Callable[[Sequence], List[T]],
        callback: Callable[[List[T]], None],
    ):
        self._lock = threading.RLock()
        self._cancelled = False
        self._transform = transform
        self._callback = callback
        self._watch = None
        watch = query.on_snapshot(self._on_snapshot)
        with self._lock:
            self._watch = watch
            cancelled_during_setup = self._cancelled
        if cancelled_during_setup:
            watch.unsubscribe()

    @property
    def active(self) -> bool:
        return not self._cancelled

    def _on_snapshot(self, docs, changes, read_time) -> None:
        with self._lock:
            if self._cancelled:
                return
            try:
                items = self._transform(docs)
            except Exception as e:
                logger.error(f"Failed to build snapshot: {e}", exc_info=True)
                return
            self._callback(items)

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            watch = self._watch
        if watch is not None:
            watch.unsubscribe()


async def iter_snapshots(subscribe: Callable[[Callable[[List[T]], None]], Subscription]) -> AsyncIterator[List[T]]:
    """
    Bridge a subscription into an async iterator for the event loop.

    Only the most recent snapshot is kept between reads; the subscription is
    cancelled when the consumer stops iterating.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    subscription = subscribe(lambda items: loop.call_soon_threadsafe(queue.put_nowait, items))
    try:
        while True:
            items = await queue.get()
            while not queue.empty():
                items = queue.get_nowait()
            yield items
    finally:
        subscription.cancel()
