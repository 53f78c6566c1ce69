"""
HTTP server for downstream consumers

Provides:
- GET /api/latest   snapshot of the cache
- GET /ws/stream    WebSocket stream: initial snapshot, then live updates
- GET /api/health   relay status
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

from aiohttp import WSMsgType, web

from cache import MarketCache
from .websocket_server import DataBroadcaster, QueuedSubscriber, DEFAULT_QUEUE_SIZE


logger = logging.getLogger(__name__)

CACHE_KEY = web.AppKey("cache", MarketCache)
BROADCASTER_KEY = web.AppKey("broadcaster", DataBroadcaster)
STATUS_KEY = web.AppKey("status", Callable[[], Dict[str, Any]])
QUEUE_SIZE_KEY = web.AppKey("queue_size", int)
CONNECTIONS_KEY = web.AppKey("connections", set)

STREAM_PATH = "/ws/stream"
LATEST_PATH = "/api/latest"
HEALTH_PATH = "/api/health"


def initial_store_envelope(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    return {"target": "initialStore", "data": snapshot}


async def handle_latest(request: web.Request) -> web.Response:
    """
    Return the latest cached data.

    GET /api/latest
    Response: { "success": true, "data": { ...snapshot... } }
    """
    cache = request.app[CACHE_KEY]
    return web.json_response({"success": True, "data": cache.snapshot()})


async def handle_health(request: web.Request) -> web.Response:
    """Health check endpoint."""
    status = {"status": "ok"}
    status.update(request.app[STATUS_KEY]())
    return web.json_response(status)


async def handle_stream(request: web.Request) -> web.WebSocketResponse:
    """
    Stream live updates to one subscriber.

    The initialStore envelope is queued before the subscriber is registered,
    so it always arrives before the first live update.
    """
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    cache = request.app[CACHE_KEY]
    broadcaster = request.app[BROADCASTER_KEY]
    connections = request.app[CONNECTIONS_KEY]

    subscriber = QueuedSubscriber(
        ws.send_str,
        name=str(request.remote or "unknown"),
        max_queue=request.app[QUEUE_SIZE_KEY],
    )
    subscriber.offer(json.dumps(initial_store_envelope(cache.snapshot())))
    broadcaster.register(subscriber)
    connections.add(ws)
    writer = asyncio.create_task(subscriber.run())

    logger.info(f"New client subscribed to stream from {subscriber.name}")

    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning(f"Stream connection error from {subscriber.name}: {ws.exception()}")
            else:
                # Subscribers are not expected to send anything
                logger.debug(f"Ignoring message from {subscriber.name}")
    finally:
        broadcaster.unregister(subscriber)
        connections.discard(ws)
        subscriber.close()
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass

    return ws


def create_app(
    cache: MarketCache,
    broadcaster: DataBroadcaster,
    status: Optional[Callable[[], Dict[str, Any]]] = None,
    queue_size: int = DEFAULT_QUEUE_SIZE,
) -> web.Application:
    """Create and configure the aiohttp application."""
    app = web.Application()

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        if request.method == 'OPTIONS':
            response = web.Response()
        else:
            response = await handler(request)

        if not response.prepared:
            response.headers['Access-Control-Allow-Origin'] = '*'
            response.headers['Access-Control-Allow-Methods'] = 'GET, OPTIONS'
            response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
        return response

    app.middlewares.append(cors_middleware)

    app[CACHE_KEY] = cache
    app[BROADCASTER_KEY] = broadcaster
    app[STATUS_KEY] = status or (lambda: {"subscribers": broadcaster.client_count})
    app[QUEUE_SIZE_KEY] = queue_size
    app[CONNECTIONS_KEY] = set()

    app.router.add_get(LATEST_PATH, handle_latest)
    app.router.add_get(HEALTH_PATH, handle_health)
    app.router.add_get(STREAM_PATH, handle_stream)

    app.on_shutdown.append(_close_streams)

    return app


async def _close_streams(app: web.Application) -> None:
    connections = list(app[CONNECTIONS_KEY])
    if connections:
        logger.info(f"Closing {len(connections)} client connection(s)...")
    for ws in connections:
        await ws.close(code=1001, message=b"Server shutting down")


class RelayServer:
    """HTTP/stream server manager."""

    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 3000):
        self.host = host
        self.port = port
        self.app = app
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self.is_running = False

        logger.info(f"RelayServer initialized on {host}:{port}")

    async def start(self):
        """Start the HTTP server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        self.is_running = True
        logger.info(f"API Server running at http://{self.host}:{self.port}")
        logger.info(f"WebSocket Stream available at ws://{self.host}:{self.port}{STREAM_PATH}")

    async def stop(self):
        """Stop the HTTP server and close subscriber connections."""
        logger.info("Stopping API server...")

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        self.is_running = False
        logger.info("API server stopped")
