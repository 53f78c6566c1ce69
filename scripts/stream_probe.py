#!/usr/bin/env python3
"""
Stream Probe Script
Connects to the relay's WebSocket stream and logs every envelope it receives
for a fixed duration.
"""

import os
import sys
import json
import asyncio
import argparse
import logging
import websockets
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("stream_probe")


async def probe(uri: str, duration: float) -> int:
    """
    Receive from the stream until the duration elapses.

    Returns:
        int: Number of messages received
    """
    received = 0

    async def receive(ws):
        nonlocal received
        async for message in ws:
            received += 1
            try:
                logger.info("Received from relay:\n%s", json.dumps(json.loads(message), indent=2))
            except json.JSONDecodeError:
                logger.warning(f"Received non-JSON message: {message!r}")

    async with websockets.connect(uri, ping_interval=10) as ws:
        logger.info("Connected to relay stream")
        try:
            await asyncio.wait_for(receive(ws), timeout=duration)
        except asyncio.TimeoutError:
            pass
        logger.info("Probe finished")

    return received


def main():
    port = os.getenv('PORT', '3000')
    parser = argparse.ArgumentParser(description="Log messages from the relay stream")
    parser.add_argument('--uri', type=str, default=f"ws://localhost:{port}/ws/stream",
                        help='Stream URI (default: ws://localhost:$PORT/ws/stream)')
    parser.add_argument('--duration', type=float, default=15.0,
                        help='Seconds to listen before exiting (default: 15)')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    try:
        count = asyncio.run(probe(args.uri, args.duration))
    except (OSError, websockets.exceptions.WebSocketException) as e:
        logger.error(f"Proxy Error: {e}")
        sys.exit(1)

    logger.info(f"Received {count} message(s)")


if __name__ == "__main__":
    main()
