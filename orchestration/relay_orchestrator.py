"""
Relay Orchestrator
Coordinates the upstream client, frame decoding, cache updates, and
downstream broadcasting.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional, Union

from api.codec import FrameCodec
from api.http_server import RelayServer, create_app
from api.signalr import SignalRClient
from api.websocket_server import DataBroadcaster, DEFAULT_QUEUE_SIZE
from cache import MarketCache


logger = logging.getLogger(__name__)


class TopicRoute(NamedTuple):
    """Where a topic's payload is cached, and whether it is pushed live."""
    slot: str
    live: bool


TOPIC_ROUTES: Dict[str, TopicRoute] = {
    "contactDetails": TopicRoute("contactDetails", live=False),
    "referanceDetails": TopicRoute("referanceDetails", live=False),
    "workerPublish": TopicRoute("liveRates", live=True),
    "workerPublishCoin": TopicRoute("workerPublishCoin", live=True),
}


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RelayOrchestrator:
    """
    Main orchestrator for the relay.

    Responsibilities:
    - Decode every upstream message into (topic, payload) pairs
    - Route metadata topics into the cache
    - Route live topics into the cache and broadcast them immediately
    - Run the upstream client and the downstream HTTP server together
    """

    def __init__(
        self,
        ws_url: str,
        origin: str,
        channel: str,
        host: str = "0.0.0.0",
        port: int = 3000,
        keepalive_interval: float = 15.0,
        reconnect_delay: float = 5.0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        cache: Optional[MarketCache] = None,
        broadcaster: Optional[DataBroadcaster] = None,
        routes: Optional[Dict[str, TopicRoute]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        connect: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize the relay.

        Args:
            ws_url: Upstream WebSocket URL
            origin: Origin header for the upstream connection
            channel: Upstream channel to subscribe to
            host: Listen address for the HTTP server
            port: Listen port for the HTTP server
            keepalive_interval: Seconds between upstream pings
            reconnect_delay: Seconds between an upstream close and the next attempt
            queue_size: Per-subscriber outbound queue size
            cache: Cache store (a new one is created if omitted)
            broadcaster: Subscriber registry (a new one is created if omitted)
            routes: Topic routing table (default: TOPIC_ROUTES)
            clock: Returns the current time (default: UTC now)
            connect: Replacement for websockets.connect (used by tests)
        """
        self.cache = cache if cache is not None else MarketCache()
        self.broadcaster = broadcaster if broadcaster is not None else DataBroadcaster()
        self.codec = FrameCodec()
        self.routes = routes if routes is not None else TOPIC_ROUTES
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.client = SignalRClient(
            url=ws_url,
            on_message=self.handle_message,
            origin=origin,
            channel=channel,
            keepalive_interval=keepalive_interval,
            reconnect_delay=reconnect_delay,
            connect=connect,
        )

        self.app = create_app(
            self.cache,
            self.broadcaster,
            status=self.get_status,
            queue_size=queue_size,
        )
        self.server = RelayServer(self.app, host=host, port=port)
        self._client_task: Optional[asyncio.Task] = None

    def handle_message(self, message: Union[str, bytes]) -> int:
        """
        Decode one raw upstream message and dispatch every data record in it.

        Returns:
            int: Number of records dispatched
        """
        frames = self.codec.decode(message)
        for frame in frames:
            self.dispatch(frame.topic, frame.payload)
        return len(frames)

    def dispatch(self, topic: str, payload: Any) -> Optional[Dict[str, Any]]:
        """
        Update the cache for a topic and broadcast it if it is live.

        Returns:
            The broadcast envelope, or None if nothing was broadcast
        """
        route = self.routes.get(topic)
        if route is None:
            logger.debug(f"Ignoring unknown topic: {topic}")
            return None

        if not route.live:
            self.cache.update(route.slot, payload)
            logger.debug(f"Cached {topic}")
            return None

        timestamp = utc_timestamp(self._clock())
        self.cache.update(route.slot, payload, timestamp=timestamp)

        envelope = {"target": topic, "data": payload, "timestamp": timestamp}
        self.broadcaster.publish(envelope)
        return envelope

    async def start(self) -> None:
        """Start the HTTP server and the upstream client."""
        await self.server.start()
        self._client_task = asyncio.create_task(self.client.run_forever())

    async def stop(self) -> None:
        """Stop the upstream client, then the HTTP server."""
        self.client.stop()
        if self._client_task is not None and not self._client_task.done():
            self._client_task.cancel()
            try:
                await self._client_task
            except asyncio.CancelledError:
                pass
        self._client_task = None
        await self.server.stop()

    async def run(self) -> None:
        """Run the relay until cancelled."""
        await self.start()
        try:
            await asyncio.Future()  # Run forever
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    def get_status(self) -> Dict[str, Any]:
        """Get relay status information."""
        return {
            "upstream": self.client.get_status(),
            "subscribers": self.broadcaster.client_count,
            "published": self.broadcaster.published,
            "codec": self.codec.get_stats(),
            "lastUpdate": self.cache.last_update,
        }
