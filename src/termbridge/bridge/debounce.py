"""Trailing-edge coalescing of bursty events.

A resize drag produces dozens of container-resize events per second;
the backend only needs the geometry the burst settles on. The coalescer
keeps the last value pushed and hands it to its sink once no new value
has arrived for a whole window.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WINDOW = 0.1


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay.

    ``asyncio.AbstractEventLoop`` satisfies this; tests substitute a
    synthetic clock.
    """

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ResizeCoalescer(Generic[T]):
    """Last-value-wins debouncer with a trailing edge.

    Every push() restarts the window. When the window elapses the most
    recent value is passed to ``sink`` exactly once.
    """

    def __init__(
        self,
        sink: Callable[[T], None],
        window: float = DEFAULT_WINDOW,
        scheduler: Scheduler | None = None,
    ) -> None:
        if window < 0:
            raise ValueError("window must be >= 0")
        self._sink = sink
        self._window = window
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None
        self._pending: T | None = None

    @property
    def window(self) -> float:
        return self._window

    @property
    def is_pending(self) -> bool:
        return self._handle is not None

    def push(self, value: T) -> None:
        """Record ``value`` and restart the window."""
        self._pending = value
        if self._handle is not None:
            self._handle.cancel()
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._handle = scheduler.call_later(self._window, self._fire)

    def cancel(self) -> None:
        """Drop the pending value, if any, without delivering it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None

    def _fire(self) -> None:
        value = self._pending
        self._handle = None
        self._pending = None
        logger.debug("Coalesced resize window elapsed")
        self._sink(value)  # type: ignore[arg-type]
