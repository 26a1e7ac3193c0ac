"""Terminal widget module for termbridge.

The capability interface the bridge renders through, plus a local TTY
implementation used by the command line.

Public API:
    TerminalWidget -- Abstract base class
    LocalTerminalWidget -- Renders on the local terminal
"""

from termbridge.widget.base import TerminalWidget, WidgetError

__all__ = ["LocalTerminalWidget", "TerminalWidget", "WidgetError"]


def __getattr__(name: str) -> type:
    """Lazy import for the POSIX-only TTY implementation."""
    if name == "LocalTerminalWidget":
        from termbridge.widget.tty import LocalTerminalWidget
        return LocalTerminalWidget
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
