# notification_bus.py
import asyncio
import threading
from collections import deque

DEFAULT_CAPACITY = 100


class SubscriberLagged(Exception):
    """The subscriber fell further behind than the retained history."""

    def __init__(self, missed):
        super().__init__(f"subscriber lagged behind by {missed} events")
        self.missed = missed


class SubscriptionClosed(Exception):
    pass


class Subscription:
    """One consumer's cursor into the bus history.

    Events are read in publish order. A subscription only sees events
    published after it was created.
    """

    def __init__(self, bus, cursor):
        self._bus = bus
        self._cursor = cursor
        self._wakeup = asyncio.Event()
        self._closed = False

    async def recv(self):
        while True:
            if self._closed:
                raise SubscriptionClosed()
            self._wakeup.clear()
            found, event = self._bus._read(self._cursor)
            if found:
                self._cursor += 1
                return event
            await self._wakeup.wait()

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._bus._unsubscribe(self)
        self._wakeup.set()

    def _notify(self):
        self._wakeup.set()

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return await self.recv()
        except SubscriptionClosed:
            raise StopAsyncIteration


class NotificationBus:
    """Fan-out of immutable events to every live subscription.

    publish() never blocks and never fails because of a slow consumer: the
    bus keeps the last ``capacity`` events and a subscriber that falls
    further behind gets SubscriberLagged on its next recv().
    """

    def __init__(self, capacity=DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._history = deque(maxlen=capacity)  # (seq, event)
        self._next_seq = 0
        self._subscribers = set()

    def publish(self, event) -> int:
        """Append event to the history and wake subscribers. Returns their count."""
        with self._lock:
            self._history.append((self._next_seq, event))
            self._next_seq += 1
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub._notify()
        return len(subscribers)

    def subscribe(self) -> Subscription:
        with self._lock:
            sub = Subscription(self, self._next_seq)
            self._subscribers.add(sub)
        return sub

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _unsubscribe(self, sub):
        with self._lock:
            self._subscribers.discard(sub)

    def _read(self, cursor):
        with self._lock:
            if cursor >= self._next_seq:
                return False, None
            oldest = self._history[0][0]
            if cursor < oldest:
                raise SubscriberLagged(oldest - cursor)
            return True, self._history[cursor - oldest][1]
