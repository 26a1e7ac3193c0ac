"""Terminal widget backed by the local TTY.

Lets the bridge run from a plain terminal: remote output is written to
stdout, stdin is put into raw mode and read through the event loop, and
the geometry is the local terminal's size.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import sys
import termios
import tty
from typing import Callable, TextIO

from termbridge.domain.models import Geometry
from termbridge.widget.base import InputCallback, TerminalWidget, WidgetError

logger = logging.getLogger(__name__)

DEFAULT_GEOMETRY = Geometry(cols=80, rows=24)
# Ctrl-], as in telnet
DEFAULT_ESCAPE_CHAR = "\x1d"


class LocalTerminalWidget(TerminalWidget):
    """Renders the remote shell on the terminal this process runs in.

    The escape character is intercepted: it is never forwarded and calls
    ``on_escape`` instead, so the user can leave a session that would
    otherwise swallow every key.
    """

    def __init__(
        self,
        stdin_fd: int | None = None,
        stdout: TextIO | None = None,
        escape_char: str | None = DEFAULT_ESCAPE_CHAR,
        on_escape: Callable[[], None] | None = None,
        read_size: int = 4096,
    ) -> None:
        self._stdin_fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
        self._stdout = stdout if stdout is not None else sys.stdout
        self._escape_char = escape_char or None
        self._on_escape = on_escape
        self._read_size = read_size
        self._callback: InputCallback | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._geometry = DEFAULT_GEOMETRY
        self._saved_attrs: list | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._disposed = False

        if os.isatty(self._stdin_fd):
            try:
                self._saved_attrs = termios.tcgetattr(self._stdin_fd)
                tty.setraw(self._stdin_fd)
            except termios.error as e:
                raise WidgetError(f"Cannot put terminal into raw mode: {e}") from e

    def render(self, text: str) -> None:
        if self._disposed:
            return
        self._stdout.write(text)
        self._stdout.flush()

    def on_input(self, callback: InputCallback) -> None:
        self._callback = callback
        if self._loop is None and not self._disposed:
            self._loop = asyncio.get_running_loop()
            self._loop.add_reader(self._stdin_fd, self._on_readable)

    def fit_to_container(self) -> None:
        try:
            size = os.get_terminal_size(self._stdout.fileno())
        except (OSError, ValueError):
            self._geometry = DEFAULT_GEOMETRY
            return
        if size.columns > 0 and size.lines > 0:
            self._geometry = Geometry(cols=size.columns, rows=size.lines)
        else:
            self._geometry = DEFAULT_GEOMETRY

    def current_geometry(self) -> Geometry:
        return self._geometry

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._callback = None
        if self._loop is not None:
            self._loop.remove_reader(self._stdin_fd)
            self._loop = None
        if self._saved_attrs is not None:
            termios.tcsetattr(self._stdin_fd, termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None
        logger.debug("Local terminal released")

    def _on_readable(self) -> None:
        try:
            data = os.read(self._stdin_fd, self._read_size)
        except OSError as e:
            logger.warning("Reading stdin failed: %s", e)
            return
        if not data:
            # EOF on stdin: stop watching it
            if self._loop is not None:
                self._loop.remove_reader(self._stdin_fd)
            return
        text = self._decoder.decode(data)
        if self._escape_char and self._escape_char in text:
            before, _, _ = text.partition(self._escape_char)
            if before and self._callback is not None:
                self._callback(before)
            if self._on_escape is not None:
                self._on_escape()
            return
        if text and self._callback is not None:
            self._callback(text)
