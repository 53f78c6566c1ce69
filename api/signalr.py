"""
Upstream SignalR client.

Keeps exactly one WebSocket connection to the source alive for as long as
the process runs:

    DISCONNECTED -> CONNECTING -> HANDSHAKING -> SUBSCRIBED
        -> (error / close) -> RECONNECT_WAIT -> CONNECTING ...

Features:
- JSON protocol handshake and channel subscription on every connect
- Keep-alive ping every KEEPALIVE_INTERVAL seconds while connected
- Fixed-delay reconnect with no retry limit
- Every inbound message is handed to a synchronous callback
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from .codec import handshake_frame, ping_frame, subscribe_frame


logger = logging.getLogger(__name__)

KEEPALIVE_INTERVAL = 15.0  # seconds
RECONNECT_DELAY = 5.0  # seconds
MAX_MESSAGE_SIZE = 100 * 1024 * 1024  # bytes, upstream snapshots can be large


class UpstreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    SUBSCRIBED = "subscribed"
    RECONNECT_WAIT = "reconnect_wait"


class SignalRClient:
    """
    Reconnecting client for the upstream push service.

    The connection and its keep-alive task are owned by a single call to
    _run_connection(); the keep-alive task is cancelled in that call's
    finally block, before the reconnect delay starts.
    """

    def __init__(
        self,
        url: str,
        on_message: Callable[[Union[str, bytes]], Any],
        origin: str,
        channel: str,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
        max_size: Optional[int] = MAX_MESSAGE_SIZE,
        connect: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize the client.

        Args:
            url: Upstream WebSocket URL
            on_message: Called with every raw inbound message
            origin: Origin header sent on connect
            channel: Channel named in the subscription record
            keepalive_interval: Seconds between ping frames
            reconnect_delay: Seconds to wait after a close before reconnecting
            max_size: Largest inbound message in bytes (None for no limit)
            connect: Replacement for websockets.connect (used by tests)
        """
        self.url = url
        self.origin = origin
        self.channel = channel
        self.keepalive_interval = keepalive_interval
        self.reconnect_delay = reconnect_delay
        self.max_size = max_size
        self._on_message = on_message
        self._connect = connect or websockets.connect

        self.state = UpstreamState.DISCONNECTED
        self.stop_event = asyncio.Event()
        self._keepalive_task: Optional[asyncio.Task] = None

        self.connect_attempts = 0
        self.messages_received = 0

    async def run_forever(self) -> None:
        """Connect, pump messages, and reconnect until stop() is called."""
        while not self.stop_event.is_set():
            await self._run_connection()

            if self.stop_event.is_set():
                break

            self.state = UpstreamState.RECONNECT_WAIT
            logger.info(f"Source WebSocket connection closed. Reconnecting in {self.reconnect_delay:g}s...")
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.reconnect_delay)
            except asyncio.TimeoutError:
                pass

        self.state = UpstreamState.DISCONNECTED
        logger.info("Source client stopped")

    async def _run_connection(self) -> None:
        self.state = UpstreamState.CONNECTING
        self.connect_attempts += 1
        logger.info(f"Connecting to Source: {self.url}")

        try:
            async with self._connect(self.url, origin=self.origin, max_size=self.max_size) as websocket:
                self.state = UpstreamState.HANDSHAKING
                logger.info("Connected to source WebSocket")

                await websocket.send(handshake_frame())
                await websocket.send(subscribe_frame(self.channel))

                self._keepalive_task = asyncio.create_task(self._keepalive(websocket))
                self.state = UpstreamState.SUBSCRIBED

                async for message in websocket:
                    self.messages_received += 1
                    try:
                        self._on_message(message)
                    except Exception as e:
                        logger.error(f"Error handling source message: {type(e).__name__}: {e}")

        except ConnectionClosedOK:
            logger.info("Source connection closed normally")
        except ConnectionClosed as e:
            logger.error(f"Source connection closed unexpectedly: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Source WebSocket error: {type(e).__name__}: {e}")
        finally:
            await self._cancel_keepalive()

    async def _keepalive(self, websocket) -> None:
        frame = ping_frame()
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await websocket.send(frame)
            except ConnectionClosed:
                return
            except Exception as e:
                logger.warning(f"Keep-alive send failed: {type(e).__name__}: {e}")
                return

    async def _cancel_keepalive(self) -> None:
        task = self._keepalive_task
        self._keepalive_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def stop(self) -> None:
        """Stop reconnecting; the current connection ends when run_forever is cancelled."""
        self.stop_event.set()

    @property
    def is_connected(self) -> bool:
        return self.state in (UpstreamState.HANDSHAKING, UpstreamState.SUBSCRIBED)

    def get_status(self) -> Dict[str, Any]:
        """Get upstream connection status information."""
        return {
            "state": self.state.value,
            "connected": self.is_connected,
            "connect_attempts": self.connect_attempts,
            "messages_received": self.messages_received,
            "url": self.url,
        }
