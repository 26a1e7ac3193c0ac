"""Transport channel module for termbridge.

Owns the persistent duplex connection opened after the handshake.
The abstract interface lets the session bridge run against the
WebSocket implementation or an in-memory fake in tests.

Public API:
    TransportChannel -- Abstract base class
    ChannelState -- Channel lifecycle states
    WebSocketChannel -- WebSocket implementation
"""

from termbridge.transport.base import ChannelState, TransportChannel

__all__ = ["ChannelState", "TransportChannel", "WebSocketChannel"]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "WebSocketChannel":
        from termbridge.transport.websocket_channel import WebSocketChannel
        return WebSocketChannel
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
