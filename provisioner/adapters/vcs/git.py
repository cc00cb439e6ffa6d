"""
Git adapter — source checkouts for tools built from source.

Uses the git CLI through the executor, never raw API calls.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecOptions
from provisioner.core.models.result import ExecResult


class GitAdapter(Adapter):
    """Shallow clones."""

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def clone(self, repo: str, dest: Path, depth: int | None = 1) -> ExecResult:
        """Clone ``repo`` into ``dest`` (which must not exist yet)."""
        args = ["clone"]
        if depth:
            args += ["--depth", str(depth)]
        args += [repo, str(dest)]
        return self.executor.run("git", args, ExecOptions())
