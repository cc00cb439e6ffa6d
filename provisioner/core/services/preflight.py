"""
Pre-flight checks — run before any step.

Connectivity is fatal: nearly every step fetches from a package index.
Low disk space is only a warning; installs may still fit.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from provisioner.adapters.base import ExecOptions, Executor
from provisioner.core.models.profile import Settings

logger = logging.getLogger(__name__)

_GB = 1024 ** 3


class PreflightError(Exception):
    """A fatal pre-run check failed."""

    def __init__(self, message: str, report: PreflightReport | None = None):
        super().__init__(message)
        self.report = report


@dataclass
class PreflightCheck:
    name: str
    ok: bool
    message: str = ""
    fatal: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "ok": self.ok, "message": self.message, "fatal": self.fatal}


@dataclass
class PreflightReport:
    checks: list[PreflightCheck] = field(default_factory=list)

    @property
    def errors(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.ok and c.fatal]

    @property
    def warnings(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.ok and not c.fatal]

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "checks": [c.to_dict() for c in self.checks]}


def check_connectivity(executor: Executor, host: str) -> PreflightCheck:
    """One ICMP echo to ``host``."""
    result = executor.run("ping", ["-c", "1", "-W", "2", host], ExecOptions(timeout=10))
    if result.ok:
        return PreflightCheck(name="network", ok=True, message=f"{host} reachable")
    return PreflightCheck(
        name="network",
        ok=False,
        message=f"No internet connectivity detected ({result.detail})",
    )


def check_disk_space(
    min_free_gb: float,
    path: str = "/",
    usage: Callable[[str], Any] = shutil.disk_usage,
) -> PreflightCheck:
    """Free space on ``path``; below ``min_free_gb`` is a warning, not an error."""
    try:
        free_gb = usage(path).free / _GB
    except OSError as e:
        return PreflightCheck(
            name="disk", ok=False, fatal=False, message=f"Cannot read free space on {path}: {e}"
        )
    if free_gb < min_free_gb:
        return PreflightCheck(
            name="disk",
            ok=False,
            fatal=False,
            message=f"Less than {min_free_gb:g}GB disk space available ({free_gb:.1f}GB free on {path})",
        )
    return PreflightCheck(name="disk", ok=True, fatal=False, message=f"{free_gb:.1f}GB free on {path}")


def run_preflight(
    settings: Settings,
    executor: Executor,
    usage: Callable[[str], Any] = shutil.disk_usage,
) -> PreflightReport:
    """Run every pre-flight check.

    Raises:
        PreflightError: if a fatal check failed (report attached).
    """
    report = PreflightReport(
        checks=[
            check_connectivity(executor, settings.connectivity_host),
            check_disk_space(settings.min_free_gb, usage=usage),
        ]
    )
    for check in report.warnings:
        logger.warning("Pre-flight warning: %s", check.message)
    if report.errors:
        message = "; ".join(c.message for c in report.errors)
        logger.error("Pre-flight failed: %s", message)
        raise PreflightError(message, report)
    return report
