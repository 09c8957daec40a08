"""
Background Sweeper
==================

Periodic expiry sweep running off the request path.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Sweeper:
    """
    Daemon thread that calls ``sweep_fn`` every ``interval_seconds``.

    A failing sweep is logged and the loop keeps going.

    Example:
        >>> sweeper = Sweeper(engine.sweep, interval_seconds=300)
        >>> sweeper.start()
        >>> sweeper.stop()
    """

    def __init__(
        self,
        sweep_fn: Callable[[], Any],
        interval_seconds: float = 300.0,
        name: str = "crossid-sweeper",
    ):
        self.sweep_fn = sweep_fn
        self.interval_seconds = interval_seconds
        self.name = name
        self.runs = 0
        self.failures = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"{self.name} started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug(f"{self.name} stopped")

    def run_once(self) -> Any:
        """Run a single sweep on the calling thread."""
        self.runs += 1
        return self.sweep_fn()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                self.failures += 1
                logger.error(f"{self.name} sweep failed: {type(e).__name__}: {e}")
