"""
Install use case — the full provisioning run.

This is the top-level orchestrator:

    identity → pre-flight → step list → Step Runner → Verifier → ledger

Identity and pre-flight problems stop the run before any step executes.
Everything after that always yields a fully formed result, so the
caller can render a report whatever happened.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from provisioner.adapters.registry import AdapterRegistry, build_registry
from provisioner.core.engine.runner import OutcomeListener, StepListener, run_all
from provisioner.core.models.identity import Identity
from provisioner.core.models.profile import Profile
from provisioner.core.models.step import RunResult, StepContext
from provisioner.core.models.verification import VerificationReport
from provisioner.core.persistence.ledger import RunLedger, RunRecord
from provisioner.core.reliability.cancellation import CancellationToken
from provisioner.core.services.identity import IdentityError, resolve
from provisioner.core.services.preflight import PreflightError, PreflightReport, run_preflight
from provisioner.core.services.steps import build_steps
from provisioner.core.services.verifier import build_verification_items, verify

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


@dataclass
class InstallResult:
    """Result of an install run."""

    profile: Profile | None = None
    identity: Identity | None = None
    preflight: PreflightReport | None = None
    run: RunResult | None = None
    verification: VerificationReport | None = None
    duration_ms: int = 0
    error: str | None = None

    @property
    def cancelled(self) -> bool:
        return self.run is not None and self.run.cancelled

    @property
    def exit_code(self) -> int:
        if self.cancelled:
            return EXIT_CANCELLED
        if self.error or (self.run is not None and self.run.has_fatal):
            return EXIT_FAILED
        return EXIT_OK

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
        if self.identity:
            result["user"] = self.identity.username
        if self.preflight:
            result["preflight"] = self.preflight.to_dict()
        if self.run:
            result["run"] = self.run.to_dict()
        if self.verification:
            result["verification"] = self.verification.to_dict()
        result["duration_ms"] = self.duration_ms
        return result


def _default_registry() -> AdapterRegistry:
    from provisioner.adapters.shell.command import ShellExecutor

    return build_registry(ShellExecutor())


def run_install(
    profile: Profile,
    *,
    registry: AdapterRegistry | None = None,
    identity_resolver: Callable[[], Identity] = resolve,
    skip_preflight: bool = False,
    cancel: CancellationToken | None = None,
    on_start: StepListener | None = None,
    on_outcome: OutcomeListener | None = None,
    disk_usage: Callable[[str], Any] = shutil.disk_usage,
) -> InstallResult:
    """Provision the target user's machine from ``profile``.

    Args:
        profile: Validated provisioning profile.
        registry: Adapter registry (default: real shell executor).
        identity_resolver: Returns the target user (default: resolve()).
        skip_preflight: Don't probe connectivity and disk space.
        cancel: Token set by the caller on operator interrupt.
        on_start: Called before each step.
        on_outcome: Called with each step's outcome.
        disk_usage: ``shutil.disk_usage`` replacement for tests.

    Returns:
        InstallResult. ``error`` is set when the run never started.
    """
    start = time.monotonic()
    result = InstallResult(profile=profile)
    settings = profile.settings
    token = cancel or CancellationToken()

    # ── Identity ─────────────────────────────────────────────────
    try:
        result.identity = identity_resolver()
    except IdentityError as e:
        logger.error("Cannot determine the target user: %s", e)
        result.error = str(e)
        return result
    identity = result.identity

    if registry is None:
        registry = _default_registry()

    # ── Pre-flight ───────────────────────────────────────────────
    if skip_preflight:
        logger.info("Pre-flight checks skipped")
    else:
        try:
            result.preflight = run_preflight(settings, registry.executor, usage=disk_usage)
        except PreflightError as e:
            result.preflight = e.report
            result.error = f"Pre-flight failed: {e}"
            _record(result, settings.ledger_file, start)
            return result

    # ── Steps ────────────────────────────────────────────────────
    context = StepContext(identity=identity, registry=registry, settings=settings)
    steps = build_steps(profile)
    result.run = run_all(
        steps,
        context,
        retry_policy=settings.retry.to_policy(),
        cancel=token,
        on_start=on_start,
        on_outcome=on_outcome,
    )

    # ── Verification ─────────────────────────────────────────────
    if result.run.cancelled:
        logger.warning("Run cancelled, verification skipped")
    else:
        result.verification = verify(build_verification_items(profile, context))
        for item in result.verification.missing_required:
            logger.warning("Missing after install: %s", item.capability)

    _record(result, settings.ledger_file, start)
    return result


def _record(result: InstallResult, ledger_file: str, start: float) -> None:
    result.duration_ms = int((time.monotonic() - start) * 1000)
    base = {
        "profile": result.profile.name if result.profile else "",
        "user": result.identity.username if result.identity else "",
        "duration_ms": result.duration_ms,
    }
    if result.run is not None:
        record = RunRecord.from_run(result.run, result.verification, **base)
    else:
        record = RunRecord(status="error", **base)
    if result.error:
        record.errors.append(result.error)
    RunLedger(Path(ledger_file)).write(record)
