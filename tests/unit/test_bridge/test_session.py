"""Tests for the SessionBridge state machine."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from termbridge.bridge.session import (
    BUSY_MESSAGE,
    CHANNEL_NOT_READY_MESSAGE,
    DISCONNECTED_MESSAGE,
    SessionBridge,
    close_notice,
)
from termbridge.domain.errors import HandshakeError
from termbridge.domain.models import (
    ChannelMessage,
    ConnectionRequest,
    Geometry,
    InputReceived,
    ScreenMode,
    SessionState,
    StatusLevel,
    ViewMode,
)
from termbridge.transport.base import ChannelState
from termbridge.widget.base import WidgetError

from tests.fakes import FakeChannel, FakeScheduler, FakeWidget, RecordingView


async def go_live(
    bridge: SessionBridge, channels: list[FakeChannel], request: ConnectionRequest
) -> FakeChannel:
    assert await bridge.submit(request)
    channel = channels[-1]
    channel.accept()
    assert bridge.state is SessionState.LIVE
    return channel


class TestInitialState:
    def test_starts_idle_on_form(self, bridge: SessionBridge) -> None:
        """A new bridge should be idle with the form visible."""
        assert bridge.state is SessionState.IDLE
        assert bridge.session is None
        assert bridge.session_id is None
        assert bridge.view_state.view is ViewMode.FORM
        assert bridge.view_state.screen is ScreenMode.NORMAL

    def test_disconnect_when_idle_is_noop(self, bridge: SessionBridge, view: RecordingView) -> None:
        """disconnect() while idle should do nothing."""
        bridge.disconnect()
        assert bridge.state is SessionState.IDLE
        assert view.statuses == []


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fields, message",
        [
            ({"hostname": "", "username": "root", "password": "x"}, "Please enter a host address"),
            ({"hostname": "h", "username": "", "password": "x"}, "Please enter a username"),
            ({"hostname": "h", "username": "root"}, "Please enter a password or provide a private key"),
        ],
    )
    async def test_invalid_request_makes_no_network_call(
        self,
        bridge: SessionBridge,
        handshake: MagicMock,
        view: RecordingView,
        channels: list[FakeChannel],
        fields: dict,
        message: str,
    ) -> None:
        """An invalid request should be rejected before any handshake."""
        ok = await bridge.submit(ConnectionRequest(**fields))
        assert ok is False
        assert bridge.state is SessionState.IDLE
        handshake.connect.assert_not_called()
        assert channels == []
        assert view.last_status == (message, StatusLevel.ERROR)
        assert bridge.last_error == message


class TestHandshake:
    @pytest.mark.asyncio
    async def test_success_opens_channel_with_session_id(
        self,
        bridge: SessionBridge,
        handshake: MagicMock,
        channels: list[FakeChannel],
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A successful handshake should open the channel for its session id."""
        ok = await bridge.submit(password_request)
        assert ok is True
        handshake.connect.assert_awaited_once_with(password_request)
        assert bridge.state is SessionState.CHANNEL_OPENING
        assert bridge.session_id == "abc"
        assert len(channels) == 1
        assert channels[0].endpoint == "ws://backend.test/ws?session_id=abc"
        assert ("Connected", StatusLevel.SUCCESS) in view.statuses
        assert view.loading == [True, False]

    @pytest.mark.asyncio
    async def test_terminal_view_titled_with_user_and_host(
        self, bridge: SessionBridge, view: RecordingView, password_request: ConnectionRequest
    ) -> None:
        """The terminal view should be titled user@host."""
        await bridge.submit(password_request)
        state, title = view.states[-1]
        assert state.view is ViewMode.TERMINAL
        assert title == "root@10.0.0.5"

    @pytest.mark.asyncio
    async def test_backend_failure_message_surfaced_verbatim(
        self,
        bridge: SessionBridge,
        handshake: MagicMock,
        channels: list[FakeChannel],
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """The backend's failure message should be shown as-is."""
        handshake.connect.side_effect = HandshakeError("auth failed", backend_message="auth failed")
        ok = await bridge.submit(password_request)
        assert ok is False
        assert bridge.state is SessionState.IDLE
        assert view.last_status == ("auth failed", StatusLevel.ERROR)
        assert channels == []
        assert bridge.view_state.view is ViewMode.FORM

    @pytest.mark.asyncio
    async def test_network_failure_uses_generic_message(
        self,
        bridge: SessionBridge,
        handshake: MagicMock,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A network failure should be reported with the generic message."""
        handshake.connect.side_effect = HandshakeError("Connection failed: connection refused")
        await bridge.submit(password_request)
        assert view.last_status == ("Connection failed: connection refused", StatusLevel.ERROR)
        assert view.loading[-1] is False

    @pytest.mark.asyncio
    async def test_second_submit_while_handshaking_is_refused(
        self,
        bridge: SessionBridge,
        handshake: MagicMock,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A second submit during a handshake should be refused."""
        gate = asyncio.Event()

        async def slow_connect(request: ConnectionRequest) -> str:
            await gate.wait()
            return "abc"

        handshake.connect.side_effect = slow_connect
        first = asyncio.create_task(bridge.submit(password_request))
        await asyncio.sleep(0)
        assert bridge.state is SessionState.HANDSHAKING

        assert await bridge.submit(password_request) is False
        assert view.last_status == (BUSY_MESSAGE, StatusLevel.ERROR)
        assert handshake.connect.await_count == 1

        gate.set()
        assert await first is True

    @pytest.mark.asyncio
    async def test_disconnect_during_handshake_ignores_late_success(
        self,
        bridge: SessionBridge,
        handshake: MagicMock,
        channels: list[FakeChannel],
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A handshake answer arriving after disconnect should be ignored."""
        gate = asyncio.Event()

        async def slow_connect(request: ConnectionRequest) -> str:
            await gate.wait()
            return "abc"

        handshake.connect.side_effect = slow_connect
        pending = asyncio.create_task(bridge.submit(password_request))
        await asyncio.sleep(0)

        bridge.disconnect()
        assert bridge.state is SessionState.IDLE
        assert view.last_status == (DISCONNECTED_MESSAGE, StatusLevel.INFO)

        gate.set()
        assert await pending is False
        assert bridge.state is SessionState.IDLE
        assert bridge.session_id is None
        assert channels == []
        assert bridge.view_state.view is ViewMode.FORM


class TestGoingLive:
    @pytest.mark.asyncio
    async def test_initial_resize_precedes_any_data(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        password_request: ConnectionRequest,
    ) -> None:
        """The initial resize should be sent before any data."""
        channel = await go_live(bridge, channels, password_request)
        widget.type("ls\r")
        assert channel.messages == [
            {"type": "resize", "resize": {"cols": 80, "rows": 24}},
            {"type": "data", "data": "ls\r"},
        ]
        assert widget.fit_calls == 1

    @pytest.mark.asyncio
    async def test_resize_uses_fitted_geometry(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        password_request: ConnectionRequest,
    ) -> None:
        """The initial resize should carry the fitted geometry."""
        widget.container = Geometry(cols=132, rows=43)
        channel = await go_live(bridge, channels, password_request)
        assert channel.messages == [{"type": "resize", "resize": {"cols": 132, "rows": 43}}]

    @pytest.mark.asyncio
    async def test_widget_attach_failure_tears_down(
        self,
        handshake: MagicMock,
        view: RecordingView,
        scheduler: FakeScheduler,
        password_request: ConnectionRequest,
    ) -> None:
        """A widget that cannot attach should tear the session down."""
        channel = FakeChannel()

        def broken_widget() -> FakeWidget:
            raise WidgetError("no terminal attached")

        bridge = SessionBridge(
            handshake=handshake,
            channel_factory=lambda: channel,
            widget_factory=broken_widget,
            view=view,
            scheduler=scheduler,
        )
        await bridge.submit(password_request)
        channel.accept()
        assert bridge.state is SessionState.IDLE
        assert channel.close_calls == 1
        assert view.last_status == ("no terminal attached", StatusLevel.ERROR)

    @pytest.mark.asyncio
    async def test_close_before_open_returns_to_idle(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A channel closing before it opens should return the bridge to idle."""
        await bridge.submit(password_request)
        channels[0].drop("session not found")
        assert bridge.state is SessionState.IDLE
        assert widget.rendered == []
        assert view.last_status == ("Connection closed: session not found", StatusLevel.ERROR)
        assert bridge.view_state.view is ViewMode.FORM


class TestLiveTraffic:
    @pytest.mark.asyncio
    async def test_each_input_event_becomes_one_data_message_in_order(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        password_request: ConnectionRequest,
    ) -> None:
        """Each input event should become one data message, in order."""
        channel = await go_live(bridge, channels, password_request)
        events = ["l", "s", " ", "-", "l", "\r", "\x03", "ü", "ls"]
        for text in events:
            widget.type(text)
        data = [m["data"] for m in channel.messages if m["type"] == "data"]
        assert data == events

    @pytest.mark.asyncio
    async def test_inbound_output_rendered_verbatim_in_order(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        password_request: ConnectionRequest,
    ) -> None:
        """Inbound output should be rendered verbatim and in order."""
        channel = await go_live(bridge, channels, password_request)
        chunks = ["Last login: today\r\n", "\x1b[1;32mroot@host\x1b[0m:~# ", ""]
        for chunk in chunks:
            channel.receive(chunk)
        assert widget.rendered == chunks

    @pytest.mark.asyncio
    async def test_refused_send_is_reported(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A send refused by the channel should be reported to the user."""
        channel = await go_live(bridge, channels, password_request)
        channel._state = ChannelState.CLOSING
        widget.type("x")
        assert view.last_status == (CHANNEL_NOT_READY_MESSAGE, StatusLevel.ERROR)

    @pytest.mark.asyncio
    async def test_input_from_previous_session_is_ignored(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        password_request: ConnectionRequest,
    ) -> None:
        """Input from a previous session should be ignored."""
        await go_live(bridge, channels, password_request)
        stale = bridge.generation
        bridge.disconnect()
        second = await go_live(bridge, channels, password_request)
        bridge.dispatch(InputReceived(generation=stale, text="rm -rf /\r"))
        bridge.dispatch(ChannelMessage(generation=stale, text="old output"))
        assert all(m["type"] == "resize" for m in second.messages)
        assert "old output" not in widget.rendered


class TestResize:
    @pytest.mark.asyncio
    async def test_burst_collapses_to_final_geometry(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        scheduler: FakeScheduler,
        password_request: ConnectionRequest,
    ) -> None:
        """A burst of resizes should send one resize with the final geometry."""
        channel = await go_live(bridge, channels, password_request)
        for cols in range(81, 91):
            widget.container = Geometry(cols=cols, rows=30)
            bridge.notify_container_resized()
            scheduler.advance(0.05)
        scheduler.advance(0.1)

        resizes = [m for m in channel.messages if m["type"] == "resize"]
        assert resizes[1:] == [{"type": "resize", "resize": {"cols": 90, "rows": 30}}]

    @pytest.mark.asyncio
    async def test_nothing_sent_before_window_elapses(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        scheduler: FakeScheduler,
        password_request: ConnectionRequest,
    ) -> None:
        """No resize should be sent before the window elapses."""
        channel = await go_live(bridge, channels, password_request)
        bridge.notify_container_resized()
        scheduler.advance(0.05)
        assert len(channel.sent) == 1
        scheduler.advance(0.05)
        assert len(channel.sent) == 2

    @pytest.mark.asyncio
    async def test_resize_ignored_when_not_live(
        self, bridge: SessionBridge, scheduler: FakeScheduler
    ) -> None:
        """Resizes before the session is live should be ignored."""
        bridge.notify_container_resized()
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_resize(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        scheduler: FakeScheduler,
        password_request: ConnectionRequest,
    ) -> None:
        """disconnect() should cancel a pending resize."""
        channel = await go_live(bridge, channels, password_request)
        bridge.notify_container_resized()
        bridge.disconnect()
        scheduler.advance(1.0)
        assert len(channel.sent) == 1


class TestFullscreen:
    def test_toggle_ignored_on_form(self, bridge: SessionBridge, view: RecordingView) -> None:
        """Fullscreen toggles on the form should be ignored."""
        state = bridge.toggle_fullscreen()
        assert state.screen is ScreenMode.NORMAL
        assert view.states == []

    @pytest.mark.asyncio
    async def test_toggle_refits_and_resizes_when_live(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        scheduler: FakeScheduler,
        password_request: ConnectionRequest,
    ) -> None:
        """A fullscreen toggle while live should refit and send a resize."""
        channel = await go_live(bridge, channels, password_request)
        widget.container = Geometry(cols=200, rows=60)
        assert bridge.toggle_fullscreen().screen is ScreenMode.FULLSCREEN
        scheduler.advance(0.1)
        assert channel.messages[-1] == {"type": "resize", "resize": {"cols": 200, "rows": 60}}
        assert bridge.state is SessionState.LIVE

        assert bridge.toggle_fullscreen().screen is ScreenMode.NORMAL

    @pytest.mark.asyncio
    async def test_leaving_terminal_view_resets_fullscreen(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        password_request: ConnectionRequest,
    ) -> None:
        """Leaving the terminal view should reset fullscreen."""
        await go_live(bridge, channels, password_request)
        bridge.toggle_fullscreen()
        bridge.disconnect()
        assert bridge.view_state.view is ViewMode.FORM
        assert bridge.view_state.screen is ScreenMode.NORMAL


class TestTeardown:
    @pytest.mark.asyncio
    async def test_unexpected_close_renders_notice_and_returns_to_form(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """An unexpected close should render a notice and return to the form."""
        channel = await go_live(bridge, channels, password_request)
        channel.drop("backend exited")

        assert widget.rendered[-1] == close_notice("backend exited")
        assert "backend exited" in widget.rendered[-1]
        assert widget.disposed
        assert bridge.state is SessionState.IDLE
        assert bridge.view_state.view is ViewMode.FORM
        assert view.last_status == ("Connection closed: backend exited", StatusLevel.ERROR)

    @pytest.mark.asyncio
    async def test_channel_error_tears_down_once(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A channel error followed by close should tear down once."""
        channel = await go_live(bridge, channels, password_request)
        channel.fail("connection reset")
        notices = [r for r in widget.rendered if "Connection closed" in r]
        assert len(notices) == 1
        assert bridge.state is SessionState.IDLE
        assert view.last_status == ("Connection error: connection reset", StatusLevel.ERROR)

    @pytest.mark.asyncio
    async def test_close_notice_render_failure_still_tears_down(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A widget that cannot render the close notice should not block teardown."""
        channel = await go_live(bridge, channels, password_request)
        widget.render = MagicMock(side_effect=BrokenPipeError("stdout closed"))  # type: ignore[method-assign]

        channel.fail("stdout closed")

        assert widget.disposed
        assert bridge.state is SessionState.IDLE
        assert bridge.view_state.view is ViewMode.FORM
        assert view.last_status == ("Connection error: stdout closed", StatusLevel.ERROR)

    @pytest.mark.asyncio
    async def test_user_disconnect_has_no_inline_notice(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        view: RecordingView,
        password_request: ConnectionRequest,
    ) -> None:
        """A user disconnect should not render the close notice."""
        channel = await go_live(bridge, channels, password_request)
        bridge.disconnect()
        assert widget.rendered == []
        assert widget.disposed
        assert channel.close_calls == 1
        assert view.last_status == (DISCONNECTED_MESSAGE, StatusLevel.INFO)
        assert bridge.last_error is None

    @pytest.mark.asyncio
    async def test_teardown_is_total_when_channel_close_raises(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        widget: FakeWidget,
        password_request: ConnectionRequest,
    ) -> None:
        """Teardown should finish even if closing the channel raises."""
        channel = await go_live(bridge, channels, password_request)
        channel.close = MagicMock(side_effect=RuntimeError("socket gone"))  # type: ignore[method-assign]
        with pytest.raises(RuntimeError):
            bridge.disconnect()
        assert widget.disposed
        assert bridge.state is SessionState.IDLE
        assert bridge.view_state.view is ViewMode.FORM

    @pytest.mark.asyncio
    async def test_new_submit_replaces_live_session(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        handshake: MagicMock,
        password_request: ConnectionRequest,
    ) -> None:
        """A new submit should replace the live session."""
        first = await go_live(bridge, channels, password_request)
        handshake.connect.return_value = "def"
        assert await bridge.submit(password_request)
        assert first.close_calls == 1
        assert bridge.session_id == "def"
        assert channels[-1].endpoint.endswith("session_id=def")

        first.receive("late output")
        assert bridge.state is SessionState.CHANNEL_OPENING

    @pytest.mark.asyncio
    async def test_wait_idle_returns_after_close(
        self,
        bridge: SessionBridge,
        channels: list[FakeChannel],
        password_request: ConnectionRequest,
    ) -> None:
        """wait_idle() should return once the session has closed."""
        channel = await go_live(bridge, channels, password_request)
        waiter = asyncio.create_task(bridge.wait_idle())
        await asyncio.sleep(0)
        assert not waiter.done()
        channel.drop()
        await asyncio.wait_for(waiter, timeout=1.0)


def test_close_notice_is_distinct() -> None:
    """The close notice should differ with and without a reason."""
    assert close_notice() == "\r\n\x1b[31mConnection closed\x1b[0m\r\n"
    assert json.dumps(close_notice("x")).count("\\u001b[31m") == 1
