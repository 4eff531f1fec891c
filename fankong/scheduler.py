#!/usr/bin/env python3
"""
Periodic scheduler with signal-driven cancellation.
"""

import logging
import signal
import threading
from typing import Callable, Optional

from .errors import CancellationError


class Scheduler:
    """
    Runs a callback now and then every `interval` seconds after the
    previous run finishes, until SIGINT or SIGTERM arrives.

    The loop itself only checks for cancellation between runs. A run in
    progress can stop earlier only if it polls `cancelled` itself, as
    NvidiaSettings does while waiting on the tool. Use as a context
    manager so the previous signal handlers are restored on exit.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, interval: float):
        self.interval = interval
        self._stop = threading.Event()
        self._signum: Optional[int] = None
        self._previous = {}

    def __enter__(self):
        for signum in self.SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle_signal)
        return self

    def __exit__(self, exc_type, exc, tb):
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        return False

    def _handle_signal(self, signum, _frame) -> None:
        self.cancel(signum)

    def cancel(self, signum: int = signal.SIGTERM) -> None:
        """Request a stop at the next wait point."""
        if self._signum is None:
            self._signum = signum
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def signum(self) -> Optional[int]:
        """Signal that requested the stop, None while running."""
        return self._signum

    def run(self, callback: Callable[[], None]) -> None:
        """
        Call `callback` until cancelled.

        Exceptions from the callback propagate and end the loop. On
        cancellation CancellationError is raised carrying the signal.
        """
        callback()
        while not self._stop.wait(self.interval):
            callback()

        logging.info("Stopping on signal %d", self._signum)
        raise CancellationError(self._signum)
