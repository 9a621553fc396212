# ─────────────────────────────────────────────────────────────────
# broadcaster.py — Live Updates to Connected Dashboards
#
# Every connected (and logged in) WebSocket is a Subscriber with
# its own bounded asyncio.Queue. Publishing only drops a message
# into each queue; the connection's own writer coroutine sends it.
# A slow or dead browser therefore never holds up a sweep.
#
# Two kinds of message go out:
#   servers-update       → the full snapshot, after every sweep
#   server-state-change  → one host flipped online/offline
# ─────────────────────────────────────────────────────────────────

import asyncio
import itertools
import logging
from typing import Callable, Dict, Iterable, Optional

from models import StateSnapshot, TransitionEvent, utcnow

logger = logging.getLogger("broadcaster")

SNAPSHOT_EVENT = "servers-update"
TRANSITION_EVENT = "server-state-change"

# Put on a subscriber's queue to wake its writer and tell it to stop
_CLOSED = object()

_subscriber_ids = itertools.count(1)


def snapshot_message(snapshot: StateSnapshot) -> dict:
    return {
        "event": SNAPSHOT_EVENT,
        "servers": {
            name: result.model_dump(mode="json")
            for name, result in snapshot.results.items()
        },
        "timestamp": (snapshot.timestamp or utcnow()).isoformat(),
    }


def transition_message(event: TransitionEvent) -> dict:
    return {"event": TRANSITION_EVENT, **event.model_dump(mode="json")}


class Subscriber:
    """One live observer. Created by Broadcaster.subscribe(), never directly."""

    def __init__(self, user: str, queue_size: int):
        self.id = next(_subscriber_ids)
        self.user = user
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    def deliver(self, message: dict) -> bool:
        """Queues a message without waiting. False means this subscriber should be dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def next_message(self) -> Optional[dict]:
        """The next queued message, or None once the subscriber is closed."""
        if self.closed and self._queue.empty():
            return None
        message = await self._queue.get()
        if message is _CLOSED:
            return None
        return message

    def pending(self):
        return self._queue.qsize()

    def close(self):
        if self.closed:
            return
        self.closed = True
        # Drop whatever is waiting; the writer only needs to see the sentinel
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __repr__(self):
        return f"<Subscriber #{self.id} user={self.user!r}>"


class Broadcaster:
    def __init__(self, snapshot_source: Callable[[], StateSnapshot], queue_size: int = 100):
        self._snapshot_source = snapshot_source
        self._queue_size = queue_size
        self._subscribers: Dict[int, Subscriber] = {}

    @property
    def subscriber_count(self):
        return len(self._subscribers)

    def __len__(self):
        return len(self._subscribers)

    def subscribe(self, user: str) -> Subscriber:
        """
        Registers a new subscriber with the current snapshot already queued.

        The snapshot goes in before the subscriber is visible to publishers,
        so it is always the first message the subscriber receives.
        """
        subscriber = Subscriber(user, self._queue_size)
        subscriber.deliver(snapshot_message(self._snapshot_source()))
        self._subscribers[subscriber.id] = subscriber

        logger.info(f"🔌 Subscriber #{subscriber.id} joined ({user}) — {len(self)} connected")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        """Safe to call more than once."""
        removed = self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        if removed is not None:
            logger.info(f"Subscriber #{subscriber.id} left ({subscriber.user}) — {len(self)} connected")

    def publish_snapshot(self, snapshot: StateSnapshot):
        self._fan_out(snapshot_message(snapshot))

    def publish_transition(self, event: TransitionEvent):
        self._fan_out(transition_message(event))

    def publish_sweep(self, snapshot: StateSnapshot, transitions: Iterable[TransitionEvent]):
        """Transitions first, then the snapshot that reflects them."""
        for event in transitions:
            self.publish_transition(event)
        self.publish_snapshot(snapshot)

    def close_all(self):
        for subscriber in list(self._subscribers.values()):
            self.unsubscribe(subscriber)

    def _fan_out(self, message: dict):
        # Iterate a copy: unsubscribe() may run while we loop
        for subscriber in list(self._subscribers.values()):
            if not subscriber.deliver(message):
                logger.info(f"Dropping {subscriber!r}: delivery failed (queue full or closed)")
                self.unsubscribe(subscriber)
