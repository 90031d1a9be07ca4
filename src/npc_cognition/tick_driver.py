"""Background driver that feeds the scheduler with periodic ticks."""

from __future__ import annotations

import threading
from typing import Callable, Optional

import structlog


class TickDriver:
    """Context manager that calls ``on_tick`` on a fixed schedule.

    Usage::

        with TickDriver(service.tick, tick_interval=0.05):
            # ... world keeps running ...
    """

    def __init__(
        self,
        on_tick: Callable[[], object],
        *,
        tick_interval: float = 0.05,
        max_ticks: Optional[int] = None,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        self._on_tick = on_tick
        self._tick_interval = tick_interval
        self._max_ticks = max_ticks
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._ticks = 0
        self._log = structlog.get_logger("tick_driver")

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> TickDriver:
        self._thread = threading.Thread(target=self._tick_loop, name="tick-driver", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._tick_interval + 5)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def __enter__(self) -> TickDriver:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.stop()

    def _tick_loop(self) -> None:
        while not self._stop.is_set():
            if self._max_ticks is not None and self._ticks >= self._max_ticks:
                self._log.info("tick_driver_done", ticks=self._ticks)
                break
            self._ticks += 1
            try:
                self._on_tick()
            except Exception as exc:
                self._log.warning("tick_failed", tick=self._ticks, error=str(exc))
            self._stop.wait(timeout=self._tick_interval)
