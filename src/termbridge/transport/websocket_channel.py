"""WebSocket transport channel.

Connects to the backend's channel endpoint with the ``websockets``
asyncio client. A single background task owns the connection: it
connects, pumps queued payloads out through a writer task, and feeds
inbound frames to the message handler.
"""

from __future__ import annotations

import asyncio
import logging

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from termbridge.domain.errors import ChannelError, ProtocolError
from termbridge.protocol import InboundDecoder
from termbridge.transport.base import ChannelState, TransportChannel

logger = logging.getLogger(__name__)

# Marks the end of the outbound queue; the writer closes the socket on it
_CLOSE = object()


class WebSocketChannel(TransportChannel):
    """Transport channel over a WebSocket connection."""

    def __init__(
        self,
        open_timeout: float | None = 10.0,
        ping_interval: float | None = 20.0,
    ) -> None:
        super().__init__()
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._task: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[object] | None = None
        self._ws: ClientConnection | None = None
        self._decoder = InboundDecoder()
        self._owner_closed = False

    def open(self, endpoint: str) -> None:
        """Start connecting to ``endpoint`` in a background task."""
        if self._state is not ChannelState.CLOSED:
            raise ChannelError(f"Channel is already {self._state.value}")
        self._state = ChannelState.CONNECTING
        self._owner_closed = False
        self._outbox = asyncio.Queue()
        self._decoder.reset()
        self._task = asyncio.get_running_loop().create_task(self._run(endpoint))
        logger.debug("Opening channel to %s", endpoint)

    def send(self, payload: str) -> bool:
        """Queue a payload for the writer task."""
        if self._state is not ChannelState.OPEN or self._outbox is None:
            logger.warning("Channel is %s, payload not sent", self._state.value)
            return False
        self._outbox.put_nowait(payload)
        return True

    def close(self) -> None:
        """Flush queued payloads, then close the connection."""
        if self._state in (ChannelState.CLOSED, ChannelState.CLOSING):
            return
        self._owner_closed = True
        was_open = self._state is ChannelState.OPEN
        self._state = ChannelState.CLOSING
        if was_open and self._outbox is not None:
            self._outbox.put_nowait(_CLOSE)
        else:
            # Still connecting; the task may not have started yet
            if self._task is not None:
                self._task.cancel()
            self._state = ChannelState.CLOSED
        logger.debug("Closing channel")

    async def wait_closed(self) -> None:
        """Wait for the background task to finish."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def _run(self, endpoint: str) -> None:
        try:
            try:
                ws = await connect(
                    endpoint,
                    max_size=None,
                    open_timeout=self._open_timeout,
                    ping_interval=self._ping_interval,
                )
            except (OSError, InvalidHandshake, InvalidURI, asyncio.TimeoutError) as e:
                logger.warning("Channel connect to %s failed: %s", endpoint, e)
                self._finish(error=str(e) or type(e).__name__, reason="connect failed")
                return

            self._ws = ws
            self._state = ChannelState.OPEN
            logger.info("Channel open")

            writer = asyncio.create_task(self._pump_outbox(ws))
            error: str | None = None
            try:
                self._emit_open()
                async for frame in ws:
                    self._deliver(frame)
            except ConnectionClosed as e:
                error = str(e)
            except Exception as e:
                # A handler raised; report it as a channel failure
                logger.exception("Channel handler failed")
                error = str(e) or type(e).__name__
            finally:
                if not writer.done():
                    writer.cancel()
                try:
                    await writer
                except asyncio.CancelledError:
                    pass
                await ws.close()
            self._finish(error=error, reason=ws.close_reason or "")
        finally:
            if self._task is asyncio.current_task():
                self._ws = None
                self._state = ChannelState.CLOSED

    async def _pump_outbox(self, ws: ClientConnection) -> None:
        assert self._outbox is not None
        while True:
            payload = await self._outbox.get()
            if payload is _CLOSE:
                await ws.close()
                return
            try:
                await ws.send(payload)
            except ConnectionClosed:
                # The reader sees the same closure and reports it
                return
            logger.debug("Sent %d chars", len(payload))  # type: ignore[arg-type]

    def _deliver(self, frame: str | bytes) -> None:
        if self._owner_closed:
            return
        try:
            text = self._decoder.decode(frame)
        except ProtocolError as e:
            logger.warning("Dropping inbound frame: %s", e)
            return
        if text:
            self._emit_message(text)

    def _finish(self, error: str | None, reason: str) -> None:
        self._state = ChannelState.CLOSED
        if self._owner_closed:
            logger.info("Channel closed")
            return
        if error is not None:
            self._emit_error(error)
        logger.info("Channel closed by peer: %s", reason or "no reason given")
        self._emit_close(reason)
