"""
Adapter registry — central lookup for all collaborator bindings.

The registry is the single point of adapter management. Steps never
construct adapters themselves: they look them up here by name, and
every adapter in one registry shares the same executor.
"""

from __future__ import annotations

import logging
from typing import Any

from provisioner.adapters.base import Adapter, Executor

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry for adapters.

    Features:
        - Register adapters by name
        - Lookup, with a hard failure for steps that need a missing one
        - Query adapter availability (shown by `provision plan`)
    """

    def __init__(self, executor: Executor):
        self._executor = executor
        self._adapters: dict[str, Adapter] = {}

    @property
    def executor(self) -> Executor:
        return self._executor

    def register(self, adapter: Adapter) -> None:
        """Register an adapter instance."""
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def get(self, name: str) -> Adapter | None:
        """Look up an adapter by name."""
        return self._adapters.get(name)

    def require(self, name: str) -> Any:
        """Look up an adapter that must exist."""
        adapter = self._adapters.get(name)
        if adapter is None:
            raise KeyError(f"No adapter registered for '{name}'")
        return adapter

    def list_adapters(self) -> list[str]:
        """List all registered adapter names."""
        return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status


def build_registry(executor: Executor) -> AdapterRegistry:
    """A registry with every adapter the step catalog uses."""
    from provisioner.adapters.languages.python import VenvAdapter
    from provisioner.adapters.packages.apt import AptAdapter
    from provisioner.adapters.packages.pipx import PipxAdapter
    from provisioner.adapters.packages.snap import SnapAdapter
    from provisioner.adapters.shell.filesystem import FilesystemAdapter
    from provisioner.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry(executor)
    registry.register(AptAdapter(executor))
    registry.register(PipxAdapter(executor))
    registry.register(SnapAdapter(executor))
    registry.register(VenvAdapter(executor))
    registry.register(GitAdapter(executor))
    registry.register(FilesystemAdapter())
    return registry
