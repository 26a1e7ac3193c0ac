"""The view the bridge keeps in step with the session lifecycle.

The bridge decides *what* is visible (form or terminal, normal or
fullscreen, which status notice); a view decides how to show it.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from typing import TextIO

from termbridge.domain.models import StatusLevel, UIViewState, ViewMode

logger = logging.getLogger(__name__)


class BridgeView(ABC):
    """Abstract interface for the UI around the terminal widget."""

    @abstractmethod
    def show_status(self, message: str, level: StatusLevel = StatusLevel.INFO) -> None:
        """Show a transient status notification."""
        ...

    @abstractmethod
    def render_view_state(self, state: UIViewState, title: str = "") -> None:
        """Switch between the form and terminal views.

        ``title`` is the ``user@host`` label of the terminal view and is
        empty when the form is shown.
        """
        ...

    def set_loading(self, active: bool) -> None:
        """Show or hide the in-progress indicator. Optional."""
        return None


class ConsoleView(BridgeView):
    """View for the command line: status notices on stderr.

    Lines end in ``\\r\\n`` because stdin may be in raw mode while a
    session is live.
    """

    _PREFIX = {
        StatusLevel.INFO: "--",
        StatusLevel.SUCCESS: "ok",
        StatusLevel.ERROR: "!!",
    }

    def __init__(self, stream: TextIO | None = None, hint: str = "") -> None:
        self._stream = stream if stream is not None else sys.stderr
        self._hint = hint
        self._state = UIViewState()

    @property
    def state(self) -> UIViewState:
        return self._state

    def show_status(self, message: str, level: StatusLevel = StatusLevel.INFO) -> None:
        self._write(f"[{self._PREFIX[level]}] {message}")

    def render_view_state(self, state: UIViewState, title: str = "") -> None:
        entering = state.view is ViewMode.TERMINAL and self._state.view is not ViewMode.TERMINAL
        self._state = state
        if entering and title:
            self._write(f"[--] {title} ({self._hint})" if self._hint else f"[--] {title}")

    def set_loading(self, active: bool) -> None:
        if active:
            self._write("[..] Connecting...")

    def _write(self, line: str) -> None:
        self._stream.write(line + "\r\n")
        self._stream.flush()
