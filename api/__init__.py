"""
API layer for the relay.
Upstream SignalR client and frame codec, downstream broadcaster and HTTP server.
"""

from .base import RelayError, FrameDecodeError, ConfigurationError, Subscriber
from .codec import FrameCodec, DecodedFrame
from .signalr import SignalRClient, UpstreamState
from .websocket_server import DataBroadcaster, QueuedSubscriber
from .http_server import RelayServer, create_app
from .factory import RelayFactory

__all__ = [
    'RelayError',
    'FrameDecodeError',
    'ConfigurationError',
    'Subscriber',
    'FrameCodec',
    'DecodedFrame',
    'SignalRClient',
    'UpstreamState',
    'DataBroadcaster',
    'QueuedSubscriber',
    'RelayServer',
    'create_app',
    'RelayFactory'
]
