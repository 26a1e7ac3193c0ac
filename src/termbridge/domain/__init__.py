"""Domain models for termbridge.

This package contains the core data structures, enumerations, events
and the error taxonomy used throughout the bridge. All models use
Pydantic v2 for validation and serialization.
"""

from termbridge.domain.errors import (
    BridgeError,
    ChannelError,
    HandshakeError,
    ProtocolError,
    RequestValidationError,
)
from termbridge.domain.models import (
    BridgeEvent,
    ChannelClosed,
    ChannelFailed,
    ChannelMessage,
    ChannelOpened,
    ConnectionRequest,
    ContainerResized,
    DataMessage,
    FullscreenToggled,
    Geometry,
    HandshakeFailed,
    HandshakeResponse,
    HandshakeSucceeded,
    InputReceived,
    OutboundMessage,
    ResizeMessage,
    ScreenMode,
    SessionState,
    StatusLevel,
    UIViewState,
    ViewMode,
)

__all__ = [
    "BridgeError",
    "BridgeEvent",
    "ChannelClosed",
    "ChannelError",
    "ChannelFailed",
    "ChannelMessage",
    "ChannelOpened",
    "ConnectionRequest",
    "ContainerResized",
    "DataMessage",
    "FullscreenToggled",
    "Geometry",
    "HandshakeError",
    "HandshakeFailed",
    "HandshakeResponse",
    "HandshakeSucceeded",
    "InputReceived",
    "OutboundMessage",
    "ProtocolError",
    "RequestValidationError",
    "ResizeMessage",
    "ScreenMode",
    "SessionState",
    "StatusLevel",
    "UIViewState",
    "ViewMode",
]
