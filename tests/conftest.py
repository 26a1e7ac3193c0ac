"""Shared test fixtures for the termbridge test suite.

Wires the fakes from tests/fakes.py into a ready-to-drive SessionBridge:
fake transport channels, a fake widget, a recording view, a synthetic
clock, and a mocked handshake client.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from termbridge.bridge.session import SessionBridge
from termbridge.domain.models import ConnectionRequest
from termbridge.handshake.client import HandshakeClient

from tests.fakes import FakeChannel, FakeScheduler, FakeWidget, RecordingView


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def password_request() -> ConnectionRequest:
    return ConnectionRequest(hostname="10.0.0.5", username="root", password="x")


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()


@pytest.fixture
def widget() -> FakeWidget:
    return FakeWidget()


@pytest.fixture
def channels() -> list[FakeChannel]:
    """Every channel the bridge under test has created, in order."""
    return []


@pytest.fixture
def handshake() -> MagicMock:
    """A HandshakeClient double that allocates session id 'abc'."""
    mock = MagicMock(spec=HandshakeClient)
    mock.connect = AsyncMock(return_value="abc")
    mock.channel_url.side_effect = lambda sid: f"ws://backend.test/ws?session_id={sid}"
    return mock


@pytest.fixture
def bridge(
    handshake: MagicMock,
    channels: list[FakeChannel],
    widget: FakeWidget,
    view: RecordingView,
    scheduler: FakeScheduler,
) -> SessionBridge:
    def make_channel() -> FakeChannel:
        channel = FakeChannel()
        channels.append(channel)
        return channel

    return SessionBridge(
        handshake=handshake,
        channel_factory=make_channel,
        widget_factory=lambda: widget,
        view=view,
        resize_debounce=0.1,
        scheduler=scheduler,
    )
