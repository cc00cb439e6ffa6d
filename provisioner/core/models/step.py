"""
Step and StepOutcome models — the provisioning contract.

A Step is the atomic unit of provisioning: a name, an action, an
idempotency check, and a failure policy. Steps are built once before
the run and never mutated. The Step Runner attaches a StepOutcome to
each step it processes.

Actions and checks receive a StepContext holding the shared,
read-only run resources (identity, adapters, settings). Nothing a
step touches is an ambient global.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from provisioner.core.models.identity import Identity
from provisioner.core.models.result import ExecResult

if TYPE_CHECKING:
    from provisioner.adapters.registry import AdapterRegistry
    from provisioner.core.models.profile import Settings


class FailurePolicy(StrEnum):
    """What a failing step does to the rest of the run."""

    FATAL = "fatal"          # abort the whole run
    TOLERANT = "tolerant"    # record the failure, continue


class StepStatus(StrEnum):
    """Final status of a processed step.

    Pending is implicit: a step with no outcome has not run.
    """

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"                    # already satisfied
    FAILED_TOLERATED = "failed_tolerated"
    FAILED_FATAL = "failed_fatal"
    CANCELLED = "cancelled"


# ── Run resources ───────────────────────────────────────────────


@dataclass(frozen=True)
class StepContext:
    """Shared run resources handed to every step action and check."""

    identity: Identity
    registry: AdapterRegistry
    settings: Settings

    def adapter(self, name: str) -> Any:
        """Look up an adapter by name (raises KeyError if unregistered)."""
        return self.registry.require(name)

    @property
    def venv_path(self) -> Path:
        return Path(self.settings.venv_path)

    @property
    def wrapper_dir(self) -> Path:
        return Path(self.settings.wrapper_dir)

    @property
    def shell_profile(self) -> Path:
        """The target user's shell profile file (appended to, never truncated)."""
        return self.identity.home_path(self.settings.profile_file)

    def expand(self, text: str) -> str:
        """Substitute ``{home}``, ``{user}``, ``{venv}`` and ``{wrapper_dir}``.

        Plain token replacement: other braces (polybar ``${colors.x}``)
        pass through untouched.
        """
        replacements = {
            "{home}": str(self.identity.home),
            "{user}": self.identity.username,
            "{venv}": str(self.venv_path),
            "{wrapper_dir}": str(self.wrapper_dir),
        }
        for token, value in replacements.items():
            text = text.replace(token, value)
        return text

    def expand_path(self, raw: str) -> Path:
        """Expand tokens; relative paths are taken from the user's home."""
        path = Path(self.expand(raw))
        if not path.is_absolute():
            path = self.identity.home / path
        return path


StepAction = Callable[[StepContext], ExecResult]
StepCheck = Callable[[StepContext], bool]


# ── Step definition ─────────────────────────────────────────────


@dataclass(frozen=True)
class Step:
    """A named, idempotency-checked unit of provisioning work.

    Args:
        name: Unique within a run.
        action: Side-effecting operation; returns an ExecResult.
        check: "Already satisfied?" predicate. None means never satisfied.
        policy: FATAL aborts the run on failure, TOLERANT continues.
        retryable: Wrap the action in the retry controller. Only for
            network-flaky operations; local file writes stay False.
        description: One-line summary for plans and logs.
        resources: Shared resources the step mutates (``shell-profile``,
            ``venv``, ``home``, ...), so the fixed order can be audited.
    """

    name: str
    action: StepAction
    check: StepCheck | None = None
    policy: FailurePolicy = FailurePolicy.TOLERANT
    retryable: bool = False
    description: str = ""
    resources: tuple[str, ...] = field(default_factory=tuple)

    @property
    def fatal(self) -> bool:
        return self.policy == FailurePolicy.FATAL

    def is_satisfied(self, context: StepContext) -> bool:
        """Run the idempotency check."""
        if self.check is None:
            return False
        return bool(self.check(context))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "policy": self.policy.value,
            "retryable": self.retryable,
            "idempotent": self.check is not None,
            "resources": list(self.resources),
        }


# ── Outcomes ────────────────────────────────────────────────────


class StepOutcome(BaseModel):
    """What happened to one step. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    step_name: str
    status: StepStatus
    detail: str | None = None
    attempts: int = 1                # 0 when skipped as already satisfied
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.SUCCEEDED, StepStatus.SKIPPED)

    @property
    def failed(self) -> bool:
        return self.status in (StepStatus.FAILED_TOLERATED, StepStatus.FAILED_FATAL)


@dataclass
class RunResult:
    """Result of running a step list. Always fully formed, even when aborted."""

    outcomes: list[StepOutcome] = field(default_factory=list)
    aborted: bool = False
    cancelled: bool = False

    def _count(self, status: StepStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return self._count(StepStatus.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self._count(StepStatus.SKIPPED)

    @property
    def tolerated(self) -> int:
        return self._count(StepStatus.FAILED_TOLERATED)

    @property
    def fatal(self) -> int:
        return self._count(StepStatus.FAILED_FATAL)

    @property
    def interrupted(self) -> int:
        """Outcomes recorded as cancelled (the step in flight when Ctrl-C arrived)."""
        return self._count(StepStatus.CANCELLED)

    @property
    def has_fatal(self) -> bool:
        return self.fatal > 0

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.aborted:
            return "aborted"
        if self.tolerated:
            return "partial"
        return "ok"

    def outcome_for(self, step_name: str) -> StepOutcome | None:
        """Look up the outcome of a named step (None if it never ran)."""
        for outcome in self.outcomes:
            if outcome.step_name == step_name:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "aborted": self.aborted,
            "cancelled": self.cancelled,
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed_tolerated": self.tolerated,
            "failed_fatal": self.fatal,
            "cancelled_steps": self.interrupted,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }
