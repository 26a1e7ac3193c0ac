"""Abstract base class for the terminal-rendering widget.

The bridge never interprets terminal output itself; it hands text to a
widget and listens for what the user types. This is the whole capability
surface it relies on, so any renderer (a browser terminal behind a
websocket, the local TTY, a test double) can sit behind it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

from termbridge.domain.models import Geometry

logger = logging.getLogger(__name__)

InputCallback = Callable[[str], None]


class TerminalWidget(ABC):
    """Abstract interface for a terminal renderer.

    Example usage::

        widget = LocalTerminalWidget()
        widget.fit_to_container()
        size = widget.current_geometry()
        widget.on_input(lambda text: channel.send(encode_data(text)))
        widget.render("Welcome\\r\\n")
        widget.dispose()
    """

    @abstractmethod
    def render(self, text: str) -> None:
        """Append ``text`` verbatim to the rendering buffer."""
        ...

    @abstractmethod
    def on_input(self, callback: InputCallback) -> None:
        """Register the callback invoked with each chunk of typed input.

        Registering again replaces the previous callback.
        """
        ...

    @abstractmethod
    def fit_to_container(self) -> None:
        """Recompute the geometry to fill the visible container."""
        ...

    @abstractmethod
    def current_geometry(self) -> Geometry:
        """The geometry as of the last fit."""
        ...

    @abstractmethod
    def dispose(self) -> None:
        """Release the widget. Safe to call more than once."""
        ...


class WidgetError(Exception):
    """Raised when the widget cannot be attached or driven."""
