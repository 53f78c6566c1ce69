"""
Fan-out of live updates to downstream WebSocket subscribers

Handles:
- Registration/unregistration of subscriber connections
- Serialize-once broadcast to every registered subscriber
- Per-subscriber bounded queues so a slow client never stalls the others
- Dropping messages (not blocking) when a subscriber falls behind
"""

import asyncio
import json
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .base import Subscriber


logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256


class QueuedSubscriber(Subscriber):
    """
    Subscriber backed by a bounded queue and a writer task.

    offer() never waits; run() drains the queue into the transport's send
    coroutine until the subscriber is closed or a send fails.
    """

    def __init__(
        self,
        send: Callable[[str], Awaitable[Any]],
        name: str = "unknown",
        max_queue: int = DEFAULT_QUEUE_SIZE
    ):
        """
        Args:
            send: Coroutine function delivering one text message to the peer
            name: Label used in log messages (usually the remote address)
            max_queue: Messages held before new ones are dropped
        """
        self.name = name
        self._send = send
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._open = True
        self.dropped = 0

    @property
    def is_open(self) -> bool:
        return self._open

    def offer(self, message: str) -> bool:
        if not self._open:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Subscriber {self.name} queue full, dropping message ({self.dropped} dropped)")
            return False
        return True

    def close(self) -> None:
        self._open = False

    async def run(self) -> None:
        """Deliver queued messages until closed or a send fails."""
        while self._open:
            message = await self._queue.get()
            try:
                await self._send(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Error sending to subscriber {self.name}: {type(e).__name__}: {e}")
                self._open = False


class DataBroadcaster:
    """
    Registry of active subscribers with fire-and-forget fan-out.

    Architecture:
    - Maintains a set of subscribers guarded by a lock
    - publish() iterates over a copy of the set, so registration and
      unregistration may happen while a broadcast is in progress
    - A failure or a full queue affects only that subscriber
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Set[Subscriber] = set()
        self.published = 0

        logger.info("DataBroadcaster initialized")

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def register(self, subscriber: Subscriber) -> None:
        """Add a subscriber to the active set."""
        with self._lock:
            self._subscribers.add(subscriber)
            total = len(self._subscribers)
        logger.info(f"Client subscribed to stream. Total clients: {total}")

    def unregister(self, subscriber: Subscriber) -> None:
        """Remove a subscriber. Safe to call more than once."""
        with self._lock:
            if subscriber not in self._subscribers:
                return
            self._subscribers.discard(subscriber)
            total = len(self._subscribers)
        logger.info(f"Client unsubscribed. Total clients: {total}")

    def publish(self, envelope: Dict[str, Any]) -> int:
        """
        Broadcast an envelope to all registered subscribers.

        Args:
            envelope: JSON-serializable message

        Returns:
            int: Number of subscribers that accepted the message
        """
        message = json.dumps(envelope)
        self.published += 1

        with self._lock:
            subscribers = list(self._subscribers)

        if not subscribers:
            logger.debug("No clients connected, nothing to broadcast")
            return 0

        delivered = 0
        for subscriber in subscribers:
            try:
                if subscriber.is_open and subscriber.offer(message):
                    delivered += 1
            except Exception as e:
                logger.warning(f"Error broadcasting to client: {type(e).__name__}: {e}")

        logger.debug(f"Broadcasted {envelope.get('target')} to {delivered}/{len(subscribers)} client(s)")
        return delivered

    def subscribers(self) -> Set[Subscriber]:
        with self._lock:
            return set(self._subscribers)

    def get_status(self) -> Dict[str, Any]:
        """Get broadcaster status information."""
        return {
            "client_count": self.client_count,
            "published": self.published,
        }
