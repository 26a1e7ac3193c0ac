"""Abstract base class for the transport channel.

A transport channel is the persistent duplex connection opened after the
handshake. It moves opaque text payloads in both directions and reports
its lifecycle through handlers; it knows nothing about terminals. The
session bridge talks to this interface only, so tests can inject a fake
channel without a network stack.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

OpenHandler = Callable[[], None]
MessageHandler = Callable[[str], None]
CloseHandler = Callable[[str], None]
ErrorHandler = Callable[[str], None]


class ChannelState(str, enum.Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class TransportChannel(ABC):
    """Abstract interface for the bridge's persistent channel.

    Handlers are invoked on the event loop, one at a time, in the order
    the underlying events were observed. A failure is reported as
    ``on_error(detail)`` followed by exactly one ``on_close(reason)``.
    Once the owner has called close(), no further handlers fire.

    Example usage::

        channel = WebSocketChannel()
        channel.set_handlers(
            on_open=lambda: channel.send('{"type": "data", "data": "ls\\r"}'),
            on_message=print,
        )
        channel.open("ws://localhost:8080/ws?session_id=abc")
    """

    def __init__(self) -> None:
        self._state = ChannelState.CLOSED
        self._on_open: OpenHandler | None = None
        self._on_message: MessageHandler | None = None
        self._on_close: CloseHandler | None = None
        self._on_error: ErrorHandler | None = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ChannelState.OPEN

    def set_handlers(
        self,
        on_open: OpenHandler | None = None,
        on_message: MessageHandler | None = None,
        on_close: CloseHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        """Register the lifecycle handlers. Unset handlers are ignored."""
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error

    @abstractmethod
    def open(self, endpoint: str) -> None:
        """Start establishing the connection and return immediately.

        Completion is reported through ``on_open`` (or ``on_error`` and
        ``on_close`` when the attempt fails).

        Raises:
            ChannelError: If the channel is already connecting, open or
                closing. Opening twice is a caller error.
        """
        ...

    @abstractmethod
    def send(self, payload: str) -> bool:
        """Enqueue a payload for transmission.

        Payloads are transmitted in the order send() was called.

        Returns:
            True if the payload was queued, False if the channel is not
            open. A refused payload is never transmitted later.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Close the channel. Idempotent; safe on a never-opened channel."""
        ...

    async def wait_closed(self) -> None:
        """Wait until the connection is fully released."""
        return None

    # -- handler dispatch for implementations --------------------------------

    def _emit_open(self) -> None:
        if self._on_open is not None:
            self._on_open()

    def _emit_message(self, text: str) -> None:
        if self._on_message is not None:
            self._on_message(text)

    def _emit_close(self, reason: str) -> None:
        if self._on_close is not None:
            self._on_close(reason)

    def _emit_error(self, detail: str) -> None:
        if self._on_error is not None:
            self._on_error(detail)
