"""
Cancellation — operator interrupts for a running provisioning pass.

A CancellationToken is shared by the Step Runner and the retry
controller. Backoff sleeps wait on the token, so an interrupt wakes
them immediately instead of after the full delay.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class Cancelled(Exception):
    """Raised when the run was cancelled while waiting."""


class CancellationToken:
    """Thread-safe cancel flag with an interruptible wait."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.warning("Cancellation requested: %s", reason)
        self._event.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout=max(seconds, 0.0))

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled(self.reason)


@contextmanager
def cancel_on_interrupt(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route SIGINT/SIGTERM to ``token`` for the duration of the block.

    The first signal cancels the token so the run can stop cleanly and
    still report. A second SIGINT falls through to KeyboardInterrupt.
    """

    def _handler(signum: int, _frame: object) -> None:
        if token.cancelled and signum == signal.SIGINT:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        token.cancel(f"interrupted by {signal.Signals(signum).name}")

    previous = {
        sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
