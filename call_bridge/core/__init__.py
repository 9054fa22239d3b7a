"""Core infrastructure shared by the bridge gateways and agent connections."""

from .queues import BoundedQueue
from .websocket_channel import RawWebSocket, WebSocketChannel
from .wire_log_sink import WireLogSink

__all__ = [
    "BoundedQueue",
    "RawWebSocket",
    "WebSocketChannel",
    "WireLogSink",
]
