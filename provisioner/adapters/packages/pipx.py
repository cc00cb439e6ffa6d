"""
pipx adapter — per-user isolated Python tool installer.

Every call runs as the target user so tools land in that user's
``~/.local`` and not in root's.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence

from provisioner.adapters.base import Adapter, ExecOptions
from provisioner.core.models.identity import Identity
from provisioner.core.models.result import ExecResult

logger = logging.getLogger(__name__)


class PipxAdapter(Adapter):
    """pipx install / list bindings."""

    @property
    def name(self) -> str:
        return "pipx"

    def is_available(self) -> bool:
        return shutil.which("pipx") is not None

    def _options(self, identity: Identity, extra_path: Sequence[str] = ()) -> ExecOptions:
        return ExecOptions(
            identity=identity,
            extra_path=[str(identity.local_bin), *extra_path],
        )

    def list_installed(self, identity: Identity) -> set[str]:
        """Names of the user's pipx-managed packages."""
        result = self.executor.run("pipx", ["list", "--short"], self._options(identity))
        if result.failed:
            return set()
        return {
            line.split()[0].lower()
            for line in result.stdout.splitlines()
            if line.strip()
        }

    def is_installed(self, identity: Identity, package: str) -> bool:
        return package.lower() in self.list_installed(identity)

    def install(
        self,
        identity: Identity,
        spec: str,
        extra_path: Sequence[str] = (),
    ) -> ExecResult:
        """``pipx install <spec>`` (a name or a ``git+https`` URL)."""
        logger.info("pipx install %s for %s", spec, identity.username)
        return self.executor.run("pipx", ["install", spec], self._options(identity, extra_path))
