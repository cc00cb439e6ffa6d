"""
Snap adapter — sandboxed-app installer.
"""

from __future__ import annotations

import shutil

from provisioner.adapters.base import Adapter
from provisioner.core.models.result import ExecResult


class SnapAdapter(Adapter):
    """snap install / list bindings (root)."""

    @property
    def name(self) -> str:
        return "snap"

    def is_available(self) -> bool:
        return shutil.which("snap") is not None

    def is_installed(self, package: str) -> bool:
        return self.executor.run("snap", ["list", package]).ok

    def install(self, package: str, classic: bool = False) -> ExecResult:
        args = ["install", package]
        if classic:
            args.append("--classic")
        return self.executor.run("snap", args)

    def enable_socket(self) -> ExecResult:
        """Start snapd so installs can run straight away."""
        return self.executor.run("systemctl", ["enable", "--now", "snapd.socket"])
