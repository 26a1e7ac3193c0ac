"""Wire framing between the bridge and the backend channel.

Outbound messages are JSON envelopes (``data`` and ``resize``); the
inbound direction carries raw terminal output with no envelope, as
text or binary frames.
"""

from __future__ import annotations

import codecs
import logging

import httpx

from termbridge.domain.errors import ProtocolError
from termbridge.domain.models import DataMessage, Geometry, ResizeMessage

logger = logging.getLogger(__name__)

_WS_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


def encode_data(text: str) -> str:
    """Encode typed input as a ``data`` frame."""
    return DataMessage(data=text).model_dump_json()


def encode_resize(geometry: Geometry) -> str:
    """Encode a geometry change as a ``resize`` frame."""
    return ResizeMessage(resize=geometry).model_dump_json()


class InboundDecoder:
    """Turns inbound frames into terminal output text.

    Binary frames go through an incremental UTF-8 decoder so that a
    multi-byte character split across two frames comes out whole. Bytes
    that are not valid UTF-8 become U+FFFD; no output is ever dropped.
    Text frames pass through untouched.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, payload: str | bytes | bytearray | memoryview) -> str:
        """Decode one inbound frame.

        Raises:
            ProtocolError: If the frame is of an unsupported type.
        """
        if isinstance(payload, str):
            return payload
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise ProtocolError(f"Unsupported frame type: {type(payload).__name__}")
        return self._decoder.decode(bytes(payload))

    def reset(self) -> None:
        self._decoder.reset()


def build_channel_url(base_url: str, channel_path: str, session_id: str) -> str:
    """Build the channel endpoint for a session.

    The scheme follows the backend's: ``http`` maps to ``ws`` and
    ``https`` to ``wss``. The session id travels as a query parameter.

    Example::

        >>> build_channel_url("https://jump.example:8443", "/ws", "abc")
        'wss://jump.example:8443/ws?session_id=abc'
    """
    if not session_id:
        raise ValueError("A channel cannot be opened without a session id")
    url = httpx.URL(base_url)
    scheme = _WS_SCHEMES.get(url.scheme)
    if scheme is None:
        raise ValueError(f"Unsupported backend URL scheme: {url.scheme!r}")
    path = url.path.rstrip("/") + "/" + channel_path.lstrip("/")
    return str(url.copy_with(scheme=scheme, path=path, params={"session_id": session_id}))
