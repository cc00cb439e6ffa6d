"""
Adapter base — the protocol contract between steps and external tools.

Steps never spawn processes themselves. They call adapters (apt, pipx,
snap, git, venv, filesystem), and every adapter that needs a process
goes through one Executor. Swapping the executor for a mock makes the
whole catalog testable without touching the host.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from provisioner.core.models.identity import Identity
from provisioner.core.models.result import ExecResult


class ExecOptions(BaseModel):
    """How to run a command.

    ``identity`` set means: drop to that user (login env, home as cwd).
    ``identity`` None means: run with the process's elevated privilege.
    """

    model_config = ConfigDict(frozen=True)

    identity: Identity | None = None
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    extra_path: list[str] = Field(default_factory=list)   # prepended to PATH
    timeout: int | None = None
    input: str | None = None

    @property
    def as_user(self) -> bool:
        return self.identity is not None


class Executor(Protocol):
    """Anything that can run a command and return an ExecResult."""

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        options: ExecOptions | None = None,
    ) -> ExecResult: ...


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return ExecResults.
    They NEVER raise for a failed command: failures are captured in
    the result and the caller decides what they mean.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name and is_available
        3. Register it in the AdapterRegistry
    """

    def __init__(self, executor: Executor | None = None):
        self._executor = executor

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            raise RuntimeError(f"{self!r} has no executor")
        return self._executor

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'pipx', 'git')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool is installed.

        Should be fast and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
