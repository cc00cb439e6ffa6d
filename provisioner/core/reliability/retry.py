"""
Retry controller — bounded exponential backoff for flaky operations.

Wraps a zero-argument thunk that returns an ExecResult. The thunk is
invoked until it succeeds or the policy's attempts run out. Backoff
is deterministic (no jitter) and capped at ``max_backoff``:

    delay(n) = min(initial_backoff * multiplier ** (n - 1), max_backoff)

With the defaults (5 attempts, 30 s, 2x, cap 600 s) an always-failing
thunk waits 30 + 60 + 120 + 240 = 450 s before RetryExhausted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from provisioner.core.models.result import ExecResult
from provisioner.core.reliability.cancellation import Cancelled, CancellationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters (seconds)."""

    max_attempts: int = 5
    initial_backoff: float = 30.0
    multiplier: float = 2.0
    max_backoff: float = 600.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff values must not be negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows failed ``attempt`` (1-based)."""
        delay = self.initial_backoff * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_backoff)

    def schedule(self) -> list[float]:
        """All backoff delays of a run that never succeeds."""
        return [self.delay_for(n) for n in range(1, self.max_attempts)]

    @property
    def total_backoff(self) -> float:
        return sum(self.schedule())


class RetryExhausted(Exception):
    """Every attempt failed. Carries the last result."""

    def __init__(self, attempts: int, last_result: ExecResult):
        self.attempts = attempts
        self.last_result = last_result
        super().__init__(f"gave up after {attempts} attempts: {last_result.detail}")


def with_retry(
    thunk: Callable[[], ExecResult],
    policy: RetryPolicy,
    *,
    cancel: CancellationToken | None = None,
    label: str = "",
) -> ExecResult:
    """Invoke ``thunk`` until it succeeds.

    Returns:
        The successful ExecResult, with ``attempts`` set.

    Raises:
        RetryExhausted: after ``policy.max_attempts`` failures.
        Cancelled: if ``cancel`` fires during a backoff sleep.
    """
    token = cancel or CancellationToken()
    attempt = 1

    while True:
        result = thunk()
        if result.ok:
            return result.model_copy(update={"attempts": attempt})

        if attempt >= policy.max_attempts:
            logger.warning(
                "%s: attempt %d/%d failed, giving up",
                label or "operation",
                attempt,
                policy.max_attempts,
            )
            raise RetryExhausted(attempt, result.model_copy(update={"attempts": attempt}))

        delay = policy.delay_for(attempt)
        logger.warning(
            "%s: attempt %d/%d failed (%s), retrying in %.0fs",
            label or "operation",
            attempt,
            policy.max_attempts,
            result.detail,
            delay,
        )
        if token.wait(delay):
            raise Cancelled(token.reason or "cancelled during backoff")
        attempt += 1
