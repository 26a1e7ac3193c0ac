"""Session Bridge module for termbridge.

Orchestrates the handshake, owns the transport channel's lifecycle,
implements the framing protocol and keeps the view in step with the
session.

Public API:
    SessionBridge -- The session state machine
    Session -- The single session record the bridge owns
    ResizeCoalescer -- Trailing-edge debouncer for geometry changes
    BridgeView -- Abstract view interface
    ConsoleView -- View for the command line
"""

from termbridge.bridge.debounce import ResizeCoalescer
from termbridge.bridge.session import Session, SessionBridge, close_notice
from termbridge.bridge.view import BridgeView, ConsoleView

__all__ = [
    "BridgeView",
    "ConsoleView",
    "ResizeCoalescer",
    "Session",
    "SessionBridge",
    "close_notice",
]
