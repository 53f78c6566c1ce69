#!/usr/bin/env python3
"""
Main entry point for the market-data relay
Connects to the upstream SignalR feed and serves the latest data over HTTP and WebSocket
"""

import sys
import os
import asyncio
import argparse
import logging
from dotenv import load_dotenv

from api import RelayFactory, ConfigurationError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger("relay")


def build_config(args: argparse.Namespace) -> dict:
    """Merge environment variables with command-line overrides."""
    config = {
        'WS_URL': os.getenv('WS_URL'),
        'WS_ORIGIN': os.getenv('WS_ORIGIN'),
        'WS_CHANNEL': os.getenv('WS_CHANNEL'),
        'HOST': os.getenv('HOST'),
        'PORT': os.getenv('PORT'),
        'KEEPALIVE_INTERVAL': os.getenv('KEEPALIVE_INTERVAL'),
        'RECONNECT_DELAY': os.getenv('RECONNECT_DELAY'),
    }

    overrides = {
        'WS_URL': args.ws_url,
        'WS_ORIGIN': args.origin,
        'WS_CHANNEL': args.channel,
        'HOST': args.host,
        'PORT': args.port,
    }
    for key, value in overrides.items():
        if value is not None:
            config[key] = str(value)

    return config


def main():
    """Main entry point with CLI argument parsing"""
    parser = argparse.ArgumentParser(
        description="Real-time market-data relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with settings from .env
  python3 main.py

  # Override the listen port
  python3 main.py --port 8080

  # Point at a different upstream and log verbosely
  python3 main.py --ws-url wss://example.com/hub --log-level DEBUG
        """
    )

    parser.add_argument('--ws-url', type=str, default=None,
                        help='Upstream WebSocket URL (default: $WS_URL)')
    parser.add_argument('--origin', type=str, default=None,
                        help='Origin header for the upstream connection (default: $WS_ORIGIN)')
    parser.add_argument('--channel', type=str, default=None,
                        help='Upstream channel to subscribe to (default: $WS_CHANNEL)')
    parser.add_argument('--host', type=str, default=None,
                        help='Listen address (default: $HOST or 0.0.0.0)')
    parser.add_argument('--port', type=int, default=None,
                        help='Listen port (default: $PORT or 3000)')
    parser.add_argument('--log-level', type=str, default=os.getenv('LOG_LEVEL', 'INFO'),
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Log level (default: $LOG_LEVEL or INFO)')

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        relay = RelayFactory.create_relay(build_config(args))
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    try:
        asyncio.run(relay.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
