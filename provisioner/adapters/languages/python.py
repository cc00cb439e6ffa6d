"""
Python adapter — the shared virtual environment.

The venv is a shared on-disk resource several steps install into. It
is considered stale unless its interpreter runs and its marker file
records the system Python version it was built from; a stale venv is
removed and recreated.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Sequence
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecOptions, Executor
from provisioner.core.models.result import ExecResult

logger = logging.getLogger(__name__)

MARKER_FILE = ".provisioner-venv"


class VenvAdapter(Adapter):
    """Create and populate a virtual environment with the system python3."""

    def __init__(self, executor: Executor | None = None, system_python: str = "python3"):
        super().__init__(executor)
        self._system_python = system_python

    @property
    def name(self) -> str:
        return "python"

    def is_available(self) -> bool:
        return shutil.which(self._system_python) is not None

    @staticmethod
    def interpreter(venv: Path) -> Path:
        return venv / "bin" / "python"

    def system_version(self) -> str | None:
        """``X.Y.Z`` of the system interpreter, or None."""
        result = self.executor.run(self._system_python, ["--version"])
        if result.failed:
            return None
        # "Python 3.12.8" → "3.12.8"
        match = re.search(r"(\d+\.\d+\.\d+)", result.stdout + result.stderr)
        return match.group(1) if match else None

    def is_healthy(self, venv: Path) -> bool:
        """The venv runs and was built from the current system python."""
        marker = venv / MARKER_FILE
        if not marker.is_file():
            return False
        if self.executor.run(str(self.interpreter(venv)), ["-c", "import sys"]).failed:
            return False
        version = self.system_version()
        return version is not None and marker.read_text(encoding="utf-8").strip() == version

    def create(self, venv: Path, system_site_packages: bool = True) -> ExecResult:
        """Create the venv and stamp it with the system python version."""
        args = ["-m", "venv"]
        if system_site_packages:
            args.append("--system-site-packages")
        result = self.executor.run(self._system_python, [*args, str(venv)])
        if result.failed:
            return result

        version = self.system_version() or "unknown"
        try:
            venv.mkdir(parents=True, exist_ok=True)
            (venv / MARKER_FILE).write_text(version + "\n", encoding="utf-8")
        except OSError as e:
            return ExecResult.failure(
                command=f"write {venv / MARKER_FILE}", error=f"Cannot stamp venv: {e}"
            )
        logger.info("Created venv %s (python %s)", venv, version)
        return result

    def pip_install(
        self,
        venv: Path,
        args: Sequence[str],
        cwd: str | None = None,
    ) -> ExecResult:
        """``<venv>/bin/python -m pip install <args>``."""
        return self.executor.run(
            str(self.interpreter(venv)),
            ["-m", "pip", "install", *args],
            ExecOptions(cwd=cwd),
        )

    def has_distribution(self, venv: Path, distribution: str) -> bool:
        """Whether pip in the venv knows ``distribution``."""
        return self.executor.run(
            str(self.interpreter(venv)), ["-m", "pip", "show", "-q", distribution]
        ).ok

    def can_import(self, venv: Path, module: str) -> bool:
        """Whether the venv interpreter can import ``module``."""
        return self.executor.run(
            str(self.interpreter(venv)), ["-c", f"import {module}"]
        ).ok
