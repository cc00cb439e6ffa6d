"""Adapters — bindings for external collaborators.

Public re-exports for convenient access.
"""

from provisioner.adapters.base import Adapter, ExecOptions, Executor
from provisioner.adapters.mock import MockExecutor
from provisioner.adapters.registry import AdapterRegistry, build_registry
from provisioner.adapters.shell.command import ShellExecutor

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecOptions",
    "Executor",
    "MockExecutor",
    "ShellExecutor",
    "build_registry",
]
