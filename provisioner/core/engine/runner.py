"""
Step runner — the central provisioning loop.

Takes an ordered list of Steps and runs them strictly in sequence:
later steps rely on state earlier ones produced (the venv must exist
before packages go into it), so there is no reordering and no
parallelism.

Flow per step:
    cancelled? → idempotency check → action (retried if retryable)
              → outcome by failure policy → stop on fatal/cancel

Failure handling is explicit policy dispatch on ExecResults. Whatever
an action raises is converted into a failed result here, so exceptions
never cross a step boundary.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from provisioner.core.models.result import ExecResult
from provisioner.core.models.step import (
    FailurePolicy,
    RunResult,
    Step,
    StepAction,
    StepContext,
    StepOutcome,
    StepStatus,
)
from provisioner.core.reliability.cancellation import Cancelled, CancellationToken
from provisioner.core.reliability.retry import RetryExhausted, RetryPolicy, with_retry

logger = logging.getLogger(__name__)

StepListener = Callable[[Step], None]
OutcomeListener = Callable[[Step, StepOutcome], None]

_MARKERS = {
    StepStatus.SUCCEEDED: "✓",
    StepStatus.SKIPPED: "=",
    StepStatus.FAILED_TOLERATED: "✗",
    StepStatus.FAILED_FATAL: "✗",
    StepStatus.CANCELLED: "⊘",
}


# ── Action combinators ──────────────────────────────────────────


def first_success_of(*actions: StepAction) -> StepAction:
    """Try ``actions`` in order; succeed with the first that succeeds.

    Models fallback chains such as "apt install, else build from
    source". If every action fails, the last failure is returned with
    the earlier ones listed in its metadata.
    """
    if not actions:
        raise ValueError("first_success_of needs at least one action")

    def _action(context: StepContext) -> ExecResult:
        failures: list[str] = []
        result = ExecResult.failure(error="no alternatives ran")
        for index, action in enumerate(actions, start=1):
            result = _invoke(action, context)
            if result.ok:
                if failures:
                    logger.info("Alternative %d succeeded after: %s", index, "; ".join(failures))
                return result
            failures.append(result.detail)
            logger.info("Alternative %d/%d failed: %s", index, len(actions), result.detail)
        return result.model_copy(
            update={"metadata": {**result.metadata, "alternatives_failed": failures}}
        )

    return _action


def sequence_of(*actions: StepAction) -> StepAction:
    """Run ``actions`` in order; stop at and return the first failure."""

    def _action(context: StepContext) -> ExecResult:
        result = ExecResult.success(stdout="nothing to do")
        for action in actions:
            result = _invoke(action, context)
            if result.failed:
                return result
        return result

    return _action


def _invoke(action: StepAction, context: StepContext) -> ExecResult:
    """Call an action, turning anything it raises into a failed result."""
    try:
        result = action(context)
    except Cancelled:
        raise
    except Exception as e:
        logger.exception("Step action raised")
        return ExecResult.failure(error=f"Unexpected error: {e}")
    if not isinstance(result, ExecResult):
        return ExecResult.failure(error=f"Action returned {type(result).__name__}, not ExecResult")
    return result


# ── Runner ──────────────────────────────────────────────────────


def validate_steps(steps: Sequence[Step]) -> None:
    """Reject step lists with duplicate names."""
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate step name: '{step.name}'")
        seen.add(step.name)


def _outcome(
    step: Step,
    status: StepStatus,
    start: float,
    detail: str | None = None,
    attempts: int = 1,
) -> StepOutcome:
    return StepOutcome(
        step_name=step.name,
        status=status,
        detail=detail,
        attempts=attempts,
        duration_ms=int((time.monotonic() - start) * 1000),
    )


def run_step(
    step: Step,
    context: StepContext,
    retry_policy: RetryPolicy,
    cancel: CancellationToken,
) -> StepOutcome:
    """Run one step and decide its outcome. Never raises."""
    start = time.monotonic()

    if cancel.cancelled:
        return _outcome(step, StepStatus.CANCELLED, start, cancel.reason, attempts=0)

    try:
        satisfied = step.is_satisfied(context)
    except Exception as e:
        logger.warning("Idempotency check for '%s' raised, running it: %s", step.name, e)
        satisfied = False
    if satisfied:
        return _outcome(step, StepStatus.SKIPPED, start, "already satisfied", attempts=0)

    def thunk() -> ExecResult:
        return _invoke(step.action, context)

    try:
        if step.retryable:
            result = with_retry(thunk, retry_policy, cancel=cancel, label=step.name)
        else:
            result = thunk()
    except Cancelled as e:
        return _outcome(step, StepStatus.CANCELLED, start, str(e) or "cancelled")
    except RetryExhausted as e:
        result = e.last_result

    if result.ok:
        return _outcome(step, StepStatus.SUCCEEDED, start, attempts=result.attempts)

    # An interrupt also kills the child process; that is not a failure
    if cancel.cancelled:
        return _outcome(step, StepStatus.CANCELLED, start, cancel.reason, result.attempts)

    status = (
        StepStatus.FAILED_FATAL
        if step.policy == FailurePolicy.FATAL
        else StepStatus.FAILED_TOLERATED
    )
    return _outcome(step, status, start, result.detail, attempts=result.attempts)


def run_all(
    steps: Sequence[Step],
    context: StepContext,
    *,
    retry_policy: RetryPolicy | None = None,
    cancel: CancellationToken | None = None,
    on_start: StepListener | None = None,
    on_outcome: OutcomeListener | None = None,
) -> RunResult:
    """Run ``steps`` in order and collect their outcomes.

    Args:
        steps: Ordered step list. Names must be unique.
        context: Shared run resources (identity, adapters, settings).
        retry_policy: Policy for retryable steps (default RetryPolicy()).
        cancel: Cancellation token shared with the caller.
        on_start: Called before each step runs.
        on_outcome: Called with each recorded outcome.

    Returns:
        RunResult. Always fully formed: a fatal failure or cancellation
        stops the loop but keeps every outcome gathered so far.
    """
    validate_steps(steps)
    policy = retry_policy or RetryPolicy()
    token = cancel or CancellationToken()
    result = RunResult()

    logger.info("Running %d steps for %s", len(steps), context.identity.username)

    for step in steps:
        if on_start is not None:
            on_start(step)

        outcome = run_step(step, context, policy, token)
        result.outcomes.append(outcome)

        log = logger.warning if outcome.failed else logger.info
        log(
            "%s %s → %s%s",
            _MARKERS[outcome.status],
            step.name,
            outcome.status.value,
            f" ({outcome.detail})" if outcome.failed and outcome.detail else "",
        )
        if on_outcome is not None:
            on_outcome(step, outcome)

        if outcome.status == StepStatus.FAILED_FATAL:
            result.aborted = True
            logger.error("Fatal step '%s' failed, stopping run", step.name)
            break
        if outcome.status == StepStatus.CANCELLED:
            result.cancelled = True
            break

    return result
