"""Core domain models for the termbridge system.

These models represent the data flowing through the bridge: the
connection request typed into the form, the backend's handshake answer,
the wire messages sent over the channel, the lifecycle and view states,
and the typed events that drive the session state machine.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from termbridge.domain.errors import RequestValidationError

DEFAULT_SSH_PORT = 22


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    """Lifecycle state of the bridge's session."""

    IDLE = "idle"
    CONNECTING = "connecting"  # Request validated, handshake being issued
    HANDSHAKING = "handshaking"  # Awaiting the backend's answer
    CHANNEL_OPENING = "channel_opening"  # Session id known, channel connecting
    LIVE = "live"
    CLOSING = "closing"


class ViewMode(str, enum.Enum):
    """Which of the two top-level views is visible."""

    FORM = "form"
    TERMINAL = "terminal"


class ScreenMode(str, enum.Enum):
    NORMAL = "normal"
    FULLSCREEN = "fullscreen"


class StatusLevel(str, enum.Enum):
    """Severity of a transient status notification."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Connection / Handshake Models
# ---------------------------------------------------------------------------


class ConnectionRequest(BaseModel):
    """The target and credentials for a new session.

    Construction only coerces types; call check() to enforce the
    field invariants before any network activity.
    """

    model_config = ConfigDict(frozen=True)

    hostname: str = Field(default="", description="Target host name or address")
    port: int = Field(default=DEFAULT_SSH_PORT, description="Target SSH port")
    username: str = Field(default="")
    password: str | None = Field(default=None)
    privatekey: str | None = Field(default=None, description="PEM-encoded private key")
    passphrase: str | None = Field(default=None, description="Passphrase for the private key")

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        # Empty credential fields are absent, not empty secrets
        if isinstance(data, dict):
            data = dict(data)
            for key in ("password", "privatekey", "passphrase"):
                if data.get(key) == "":
                    data[key] = None
            if not data.get("port"):
                data["port"] = DEFAULT_SSH_PORT
        return data

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> ConnectionRequest:
        """Build a request from loosely typed form fields.

        Missing fields become empty, and a port that does not parse as
        an integer falls back to the default SSH port.
        """
        try:
            port = int(form.get("port") or DEFAULT_SSH_PORT)
        except (TypeError, ValueError):
            port = DEFAULT_SSH_PORT
        return cls(
            hostname=str(form.get("hostname") or ""),
            port=port,
            username=str(form.get("username") or ""),
            password=form.get("password") or None,
            privatekey=form.get("privatekey") or None,
            passphrase=form.get("passphrase") or None,
        )

    def check(self) -> None:
        """Validate the field invariants.

        Raises:
            RequestValidationError: With a message fit for the user, for
                the first problem found (host, username, credentials).
        """
        if not self.hostname.strip():
            raise RequestValidationError("Please enter a host address", field="hostname")
        if not self.username.strip():
            raise RequestValidationError("Please enter a username", field="username")
        if not (1 <= self.port <= 65535):
            raise RequestValidationError("Port must be between 1 and 65535", field="port")
        if not self.password and not self.privatekey:
            raise RequestValidationError(
                "Please enter a password or provide a private key", field="password"
            )
        if self.passphrase and not self.privatekey:
            raise RequestValidationError(
                "A passphrase requires a private key", field="passphrase"
            )

    @property
    def display_name(self) -> str:
        """The ``user@host`` title shown above the terminal."""
        return f"{self.username}@{self.hostname}"

    def to_payload(self) -> dict[str, Any]:
        """The JSON body of the handshake request."""
        return self.model_dump(exclude_none=True)


class HandshakeResponse(BaseModel):
    """The backend's answer to a handshake request."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    success: bool
    session_id: str | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Wire Models (discriminated union)
# ---------------------------------------------------------------------------


class Geometry(BaseModel):
    """Terminal size in character cells."""

    model_config = ConfigDict(frozen=True)

    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


class DataMessage(BaseModel):
    """Raw input to forward to the remote shell."""

    model_config = ConfigDict(frozen=True)

    type: Literal["data"] = "data"
    data: str


class ResizeMessage(BaseModel):
    """A terminal geometry change."""

    model_config = ConfigDict(frozen=True)

    type: Literal["resize"] = "resize"
    resize: Geometry


OutboundMessage = Annotated[
    Union[DataMessage, ResizeMessage],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# View Models
# ---------------------------------------------------------------------------


class UIViewState(BaseModel):
    """Visible state of the UI, derived from the session lifecycle."""

    model_config = ConfigDict(frozen=True)

    view: ViewMode = ViewMode.FORM
    screen: ScreenMode = ScreenMode.NORMAL

    @property
    def is_fullscreen(self) -> bool:
        return self.screen is ScreenMode.FULLSCREEN


# ---------------------------------------------------------------------------
# Bridge Events
# ---------------------------------------------------------------------------


class BridgeEvent(BaseModel):
    """Base for events pushed into SessionBridge.dispatch().

    ``generation`` names the session an event belongs to; None means
    whatever session is current when the event is dispatched.
    """

    model_config = ConfigDict(frozen=True)

    generation: int | None = None


class HandshakeSucceeded(BridgeEvent):
    session_id: str


class HandshakeFailed(BridgeEvent):
    message: str


class ChannelOpened(BridgeEvent):
    pass


class ChannelMessage(BridgeEvent):
    text: str


class ChannelClosed(BridgeEvent):
    reason: str = ""


class ChannelFailed(BridgeEvent):
    detail: str = ""


class InputReceived(BridgeEvent):
    """Text typed into the widget."""

    text: str


class ContainerResized(BridgeEvent):
    pass


class FullscreenToggled(BridgeEvent):
    pass
