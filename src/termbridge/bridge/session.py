"""The session bridge: handshake, channel lifecycle and framing.

Owns the single active Session and drives it through

    idle -> connecting -> handshaking -> channel_opening -> live -> closing -> idle

Every asynchronous result (handshake answer, channel open/message/close,
widget input, resize) comes back as a typed event through dispatch().
Events carry the generation of the session they belong to, and the
generation is bumped on every teardown, so a late callback from a
session that no longer exists is ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from pydantic import BaseModel, ConfigDict

from termbridge.bridge.debounce import DEFAULT_WINDOW, ResizeCoalescer, Scheduler
from termbridge.bridge.view import BridgeView
from termbridge.domain.errors import ChannelError, HandshakeError, RequestValidationError
from termbridge.domain.models import (
    BridgeEvent,
    ChannelClosed,
    ChannelFailed,
    ChannelMessage,
    ChannelOpened,
    ConnectionRequest,
    ContainerResized,
    FullscreenToggled,
    HandshakeFailed,
    HandshakeSucceeded,
    InputReceived,
    ScreenMode,
    SessionState,
    StatusLevel,
    UIViewState,
    ViewMode,
)
from termbridge.handshake.client import HandshakeClient
from termbridge.protocol import encode_data, encode_resize
from termbridge.transport.base import TransportChannel
from termbridge.widget.base import TerminalWidget, WidgetError

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "A connection is already in progress"
CONNECTED_MESSAGE = "Connected"
DISCONNECTED_MESSAGE = "Disconnected"
CHANNEL_NOT_READY_MESSAGE = "Terminal channel is not ready, input was not sent"


def close_notice(reason: str = "") -> str:
    """The inline marker rendered when the channel drops under a live session."""
    text = f"Connection closed: {reason}" if reason else "Connection closed"
    return f"\r\n\x1b[31m{text}\x1b[0m\r\n"


class Session(BaseModel):
    """The bridge's one mutable resource.

    Created when a request is submitted, gains its ``session_id`` from
    the handshake, its channel when the channel is opened and its widget
    when the session goes live. Dropped as a whole on teardown.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    generation: int
    request: ConnectionRequest
    state: SessionState = SessionState.CONNECTING
    session_id: str | None = None
    channel: TransportChannel | None = None
    widget: TerminalWidget | None = None


class SessionBridge:
    """Connects a terminal widget to a remote shell through the backend.

    Example usage::

        bridge = SessionBridge(
            handshake=HandshakeClient("http://localhost:8080"),
            channel_factory=WebSocketChannel,
            widget_factory=LocalTerminalWidget,
            view=ConsoleView(),
        )
        if await bridge.submit(request):
            await bridge.wait_idle()
    """

    def __init__(
        self,
        handshake: HandshakeClient,
        channel_factory: Callable[[], TransportChannel],
        widget_factory: Callable[[], TerminalWidget],
        view: BridgeView,
        resize_debounce: float = DEFAULT_WINDOW,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._handshake = handshake
        self._channel_factory = channel_factory
        self._widget_factory = widget_factory
        self._view = view
        self._coalescer: ResizeCoalescer[BridgeEvent] = ResizeCoalescer(
            self._flush_resize, window=resize_debounce, scheduler=scheduler
        )
        self._session: Session | None = None
        self._generation = 0
        self._view_state = UIViewState()
        self._last_error: str | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._handlers: dict[type[BridgeEvent], Callable[..., None]] = {
            HandshakeSucceeded: self._on_handshake_succeeded,
            HandshakeFailed: self._on_handshake_failed,
            ChannelOpened: self._on_channel_opened,
            ChannelMessage: self._on_channel_message,
            ChannelClosed: self._on_channel_closed,
            ChannelFailed: self._on_channel_failed,
            InputReceived: self._on_input,
            ContainerResized: self._on_container_resized,
            FullscreenToggled: self._on_fullscreen_toggled,
        }

    # -- accessors -----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session is not None else SessionState.IDLE

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def session_id(self) -> str | None:
        return self._session.session_id if self._session is not None else None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def view_state(self) -> UIViewState:
        return self._view_state

    @property
    def is_live(self) -> bool:
        return self.state is SessionState.LIVE

    @property
    def last_error(self) -> str | None:
        """The last user-visible error, cleared by each submit()."""
        return self._last_error

    async def wait_idle(self) -> None:
        """Wait until the bridge is back in ``idle``."""
        await self._idle.wait()

    # -- user actions --------------------------------------------------------

    async def submit(self, request: ConnectionRequest) -> bool:
        """Validate ``request`` and run the handshake.

        Returns True when the handshake succeeded and the channel is
        being opened. Failures are reported through the view and leave
        the bridge idle. Any previous session is torn down first.
        """
        if self.state in (SessionState.CONNECTING, SessionState.HANDSHAKING):
            logger.warning("Connect refused: handshake already in flight")
            self._view.show_status(BUSY_MESSAGE, StatusLevel.ERROR)
            return False

        self._last_error = None
        try:
            request.check()
        except RequestValidationError as e:
            logger.info("Rejected connection request: %s", e)
            self._fail(str(e))
            return False

        if self._session is not None:
            logger.info("New connection requested, replacing session %s", self.session_id)
            self._teardown()

        self._generation += 1
        generation = self._generation
        session = Session(generation=generation, request=request)
        self._session = session
        self._idle.clear()
        logger.info("Connecting to %s:%d", request.display_name, request.port)

        self._view.set_loading(True)
        session.state = SessionState.HANDSHAKING
        try:
            session_id = await self._handshake.connect(request)
        except HandshakeError as e:
            event: BridgeEvent = HandshakeFailed(generation=generation, message=str(e))
        else:
            event = HandshakeSucceeded(generation=generation, session_id=session_id)
        finally:
            if generation == self._generation:
                self._view.set_loading(False)

        self.dispatch(event)
        return self.state is SessionState.CHANNEL_OPENING or self.is_live

    def disconnect(self) -> None:
        """Tear the session down, whatever state it is in."""
        if self._session is None:
            return
        logger.info("Disconnecting session %s (%s)", self.session_id, self.state.value)
        self._teardown()
        self._view.show_status(DISCONNECTED_MESSAGE, StatusLevel.INFO)

    def notify_container_resized(self) -> None:
        self.dispatch(ContainerResized())

    def toggle_fullscreen(self) -> UIViewState:
        self.dispatch(FullscreenToggled())
        return self._view_state

    # -- event dispatch ------------------------------------------------------

    def dispatch(self, event: BridgeEvent) -> None:
        """Apply one event to the state machine."""
        if event.generation is not None and event.generation != self._generation:
            logger.debug(
                "Ignoring %s from stale session generation %d",
                type(event).__name__, event.generation,
            )
            return
        self._handlers[type(event)](event)

    def _on_handshake_succeeded(self, event: HandshakeSucceeded) -> None:
        session = self._session
        if session is None or session.state is not SessionState.HANDSHAKING:
            return
        session.session_id = event.session_id
        session.state = SessionState.CHANNEL_OPENING
        self._view.show_status(CONNECTED_MESSAGE, StatusLevel.SUCCESS)
        self._set_view(ViewMode.TERMINAL)

        generation = session.generation
        channel = self._channel_factory()
        session.channel = channel
        channel.set_handlers(
            on_open=lambda: self.dispatch(ChannelOpened(generation=generation)),
            on_message=lambda text: self.dispatch(
                ChannelMessage(generation=generation, text=text)
            ),
            on_close=lambda reason: self.dispatch(
                ChannelClosed(generation=generation, reason=reason)
            ),
            on_error=lambda detail: self.dispatch(
                ChannelFailed(generation=generation, detail=detail)
            ),
        )
        try:
            channel.open(self._handshake.channel_url(event.session_id))
        except ChannelError as e:
            logger.error("Could not open channel for session %s: %s", event.session_id, e)
            self._teardown()
            self._fail(f"Connection error: {e}")

    def _on_handshake_failed(self, event: HandshakeFailed) -> None:
        session = self._session
        if session is None or session.state is not SessionState.HANDSHAKING:
            return
        self._teardown()
        self._fail(event.message)

    def _on_channel_opened(self, event: ChannelOpened) -> None:
        session = self._session
        if session is None or session.state is not SessionState.CHANNEL_OPENING:
            return
        try:
            widget = self._widget_factory()
        except WidgetError as e:
            logger.error("Could not attach terminal widget: %s", e)
            self._teardown()
            self._fail(str(e))
            return
        session.widget = widget
        session.state = SessionState.LIVE
        logger.info("Session %s live", session.session_id)

        # Size the remote pty to the viewport before any input flows
        widget.fit_to_container()
        self._send(encode_resize(widget.current_geometry()))

        generation = session.generation
        widget.on_input(
            lambda text: self.dispatch(InputReceived(generation=generation, text=text))
        )

    def _on_channel_message(self, event: ChannelMessage) -> None:
        session = self._session
        if session is None or session.state is not SessionState.LIVE or session.widget is None:
            logger.debug("Dropping output received while %s", self.state.value)
            return
        session.widget.render(event.text)

    def _on_channel_closed(self, event: ChannelClosed) -> None:
        self._lose_channel(event.reason, "Connection closed")

    def _on_channel_failed(self, event: ChannelFailed) -> None:
        logger.warning("Channel error: %s", event.detail or "unknown")
        self._lose_channel(event.detail, "Connection error")

    def _on_input(self, event: InputReceived) -> None:
        if not self.is_live:
            logger.debug("Dropping input received while %s", self.state.value)
            return
        self._send(encode_data(event.text))

    def _on_container_resized(self, event: ContainerResized) -> None:
        if self.is_live:
            self._coalescer.push(event)

    def _on_fullscreen_toggled(self, event: FullscreenToggled) -> None:
        if self._view_state.view is not ViewMode.TERMINAL:
            return
        screen = ScreenMode.NORMAL if self._view_state.is_fullscreen else ScreenMode.FULLSCREEN
        self._set_view(ViewMode.TERMINAL, screen)
        if self.is_live:
            self._coalescer.push(event)

    # -- internals -----------------------------------------------------------

    def _flush_resize(self, _event: BridgeEvent) -> None:
        session = self._session
        if session is None or session.state is not SessionState.LIVE or session.widget is None:
            return
        session.widget.fit_to_container()
        self._send(encode_resize(session.widget.current_geometry()))

    def _send(self, payload: str) -> bool:
        session = self._session
        if session is None or session.channel is None or not session.channel.send(payload):
            logger.warning("Outbound message refused in state %s", self.state.value)
            self._view.show_status(CHANNEL_NOT_READY_MESSAGE, StatusLevel.ERROR)
            return False
        logger.debug("Queued %s", payload[:60])
        return True

    def _lose_channel(self, reason: str, status: str) -> None:
        session = self._session
        if session is None:
            return
        if session.state is SessionState.LIVE:
            if session.widget is not None:
                try:
                    session.widget.render(close_notice(reason))
                except OSError as e:
                    logger.warning("Could not render close notice: %s", e)
        elif session.state is not SessionState.CHANNEL_OPENING:
            return
        logger.info("Channel lost for session %s: %s", session.session_id, reason or "no reason")
        self._teardown()
        self._fail(f"{status}: {reason}" if reason else status)

    def _fail(self, message: str) -> None:
        self._last_error = message
        self._view.show_status(message, StatusLevel.ERROR)

    def _set_view(self, view: ViewMode, screen: ScreenMode = ScreenMode.NORMAL) -> None:
        if view is ViewMode.FORM:
            screen = ScreenMode.NORMAL
        state = UIViewState(view=view, screen=screen)
        if state == self._view_state:
            return
        self._view_state = state
        title = ""
        if view is ViewMode.TERMINAL and self._session is not None:
            title = self._session.request.display_name
        self._view.render_view_state(state, title)

    def _teardown(self) -> None:
        """Release the channel and the widget and return to idle.

        Both releases run even if one of them raises, and the bridge
        always ends idle with the form visible.
        """
        session = self._session
        self._generation += 1
        self._coalescer.cancel()
        if session is None:
            return
        was_handshaking = session.state in (SessionState.CONNECTING, SessionState.HANDSHAKING)
        session.state = SessionState.CLOSING
        try:
            if session.channel is not None:
                session.channel.close()
        finally:
            try:
                if session.widget is not None:
                    session.widget.dispose()
            finally:
                self._session = None
                if was_handshaking:
                    self._view.set_loading(False)
                self._set_view(ViewMode.FORM)
                self._idle.set()
                logger.info("Session %s closed", session.session_id or "(pending)")
