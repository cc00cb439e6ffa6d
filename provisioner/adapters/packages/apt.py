"""
APT adapter — the system package manager.

Install and query-installed only. Output is never parsed beyond the
dpkg status needed for the idempotency check.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence

from provisioner.adapters.base import Adapter, ExecOptions
from provisioner.core.models.result import ExecResult

logger = logging.getLogger(__name__)

_APT_OPTIONS = ExecOptions(env={"DEBIAN_FRONTEND": "noninteractive"})
_INSTALLED = "install ok installed"


class AptAdapter(Adapter):
    """apt-get / dpkg-query bindings (always run as root)."""

    @property
    def name(self) -> str:
        return "apt"

    def is_available(self) -> bool:
        return shutil.which("apt-get") is not None

    def update(self) -> ExecResult:
        """Refresh the package index."""
        return self.executor.run("apt-get", ["update"], _APT_OPTIONS)

    def install(self, packages: Sequence[str]) -> ExecResult:
        """Install ``packages`` in one transaction."""
        if not packages:
            return ExecResult.success(command="apt-get install", stdout="nothing to install")
        logger.info("Installing %d apt packages", len(packages))
        return self.executor.run("apt-get", ["install", "-y", *packages], _APT_OPTIONS)

    def installed(self, packages: Sequence[str]) -> set[str]:
        """Which of ``packages`` dpkg reports as installed."""
        if not packages:
            return set()
        result = self.executor.run(
            "dpkg-query", ["-W", "-f=${Package} ${Status}\\n", *packages]
        )
        # dpkg-query exits 1 when any package is unknown but still
        # prints the ones it knows
        found = set()
        for line in result.stdout.splitlines():
            package, _, status = line.partition(" ")
            if status.strip() == _INSTALLED:
                found.add(package.split(":", 1)[0])
        return found

    def is_installed(self, package: str) -> bool:
        return package in self.installed([package])

    def all_installed(self, packages: Sequence[str]) -> bool:
        return set(packages) <= self.installed(packages)
