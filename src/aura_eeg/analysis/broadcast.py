"""
Multi-Subscriber Broadcast

Fan-out of analyzer frames to any number of independent consumers. Every
subscription owns its own bounded buffer, so a stalled consumer only loses
its own oldest frames; the publisher never blocks.

Usage:
    from aura_eeg.analysis.broadcast import Broadcaster

    channel = Broadcaster("bands", queue_size=256)
    sub = channel.subscribe()
    channel.publish(frame)

    for frame in sub:          # blocks until the next frame or close()
        render(frame)
"""

from __future__ import annotations

from collections import deque
import logging
import queue
import threading
from typing import Generic, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_SIZE = 256


class SubscriptionClosed(Exception):
    """Raised by Subscription.get() once the subscription is closed and drained."""


class Subscription(Generic[T]):
    """
    One consumer's view of a Broadcaster.

    Frames are buffered in a deque of ``maxsize`` entries; when full, the
    oldest frame is discarded and ``dropped`` is incremented. A maxsize of
    0 means unbounded.
    """

    def __init__(self, broadcaster: "Broadcaster[T]", maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self._broadcaster = broadcaster
        self._items: deque[T] = deque(maxlen=maxsize if maxsize > 0 else None)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0
        self.received = 0

    @property
    def maxsize(self) -> int:
        return self._items.maxlen or 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, item: T) -> bool:
        with self._cond:
            if self._closed:
                return False
            maxlen = self._items.maxlen
            if maxlen is not None and len(self._items) == maxlen:
                self.dropped += 1
                if self.dropped == 1:
                    logger.warning(
                        f"Subscriber on '{self._broadcaster.name}' is not keeping up; "
                        f"dropping oldest frames (capacity {maxlen})"
                    )
            self._items.append(item)
            self.received += 1
            self._cond.notify()
            return True

    def get(self, timeout: float | None = None) -> T:
        """
        Next frame, waiting up to ``timeout`` seconds (forever if None).

        Raises
        ------
        queue.Empty
            If the timeout expires with nothing buffered.
        SubscriptionClosed
            If the subscription is closed and fully drained.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                raise queue.Empty
            if self._items:
                return self._items.popleft()
            raise SubscriptionClosed

    def get_nowait(self) -> T:
        return self.get(timeout=0)

    def drain(self) -> list[T]:
        """Remove and return everything buffered right now."""
        with self._cond:
            items = list(self._items)
            self._items.clear()
            return items

    def close(self) -> None:
        """Stop receiving frames; buffered frames can still be read."""
        self._broadcaster._unsubscribe(self)
        self._mark_closed()

    def _mark_closed(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except SubscriptionClosed:
                return

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Broadcaster(Generic[T]):
    """
    Publish/subscribe channel with per-subscriber buffering.

    New subscribers only see frames published after they subscribed.

    Parameters
    ----------
    name : str
        Channel name used in log messages.
    queue_size : int
        Default per-subscriber capacity (0 = unbounded). Default 256.
    """

    def __init__(self, name: str, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        if queue_size < 0:
            raise ValueError(f"queue_size must be >= 0, got {queue_size}")
        self.name = name
        self.queue_size = queue_size
        self._subscribers: list[Subscription[T]] = []
        self._lock = threading.Lock()
        self._closed = False
        self.published = 0

    def subscribe(self, maxsize: int | None = None) -> Subscription[T]:
        """Register a new subscriber; ``maxsize`` overrides the channel default."""
        sub: Subscription[T] = Subscription(
            self, self.queue_size if maxsize is None else maxsize
        )
        with self._lock:
            if self._closed:
                sub._mark_closed()
            else:
                self._subscribers.append(sub)
        logger.debug(f"New subscriber on '{self.name}' (maxsize={sub.maxsize})")
        return sub

    def publish(self, item: T) -> int:
        """
        Deliver ``item`` to every current subscriber without blocking.

        Returns
        -------
        int
            Number of subscribers the item was offered to.
        """
        with self._lock:
            subscribers = list(self._subscribers)
            self.published += 1
        for sub in subscribers:
            sub._offer(item)
        return len(subscribers)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self) -> None:
        """Close every subscription; later subscribers start closed."""
        with self._lock:
            self._closed = True
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for sub in subscribers:
            sub._mark_closed()

    def _unsubscribe(self, sub: Subscription[T]) -> None:
        with self._lock:
            try:
                self._subscribers.remove(sub)
            except ValueError:
                pass
