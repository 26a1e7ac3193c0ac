"""Error taxonomy for the session bridge.

Every failure the bridge can encounter maps onto one of these classes.
All but ProtocolError end up as a user-visible status notice; a
ProtocolError only costs the offending frame.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all termbridge errors."""


class RequestValidationError(BridgeError):
    """Raised when a ConnectionRequest is missing or has contradictory fields.

    Raised before any network activity. The message is suitable for
    showing to the user as-is.
    """

    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message)
        self.field = field


class HandshakeError(BridgeError):
    """Raised when the handshake request fails.

    Covers network failures and backend-reported failures alike. When the
    backend supplied a message it is kept verbatim in ``backend_message``.
    """

    def __init__(self, message: str, backend_message: str | None = None) -> None:
        super().__init__(message)
        self.backend_message = backend_message


class ChannelError(BridgeError):
    """Raised on transport channel misuse or failure."""


class ProtocolError(BridgeError):
    """Raised when an inbound frame cannot be turned into terminal output."""
