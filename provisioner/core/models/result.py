"""
ExecResult model — the execution contract.

Every external command and every step action produces an ExecResult.
This is the fundamental I/O contract between the engine and adapters:
adapters return results, the engine decides what a nonzero exit means.
Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


# Exit codes used when the process never produced one of its own
EXIT_TIMEOUT = 124
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


class ExecResult(BaseModel):
    """Result of running an external command or a step action.

    Results capture the full outcome. The executor NEVER raises for a
    nonzero exit code; callers inspect ``ok`` / ``failed``.
    """

    command: str = ""                 # printable command line or file path
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    error: str | None = None          # one-line failure summary
    attempts: int = 1                 # >1 only when run through the retry controller

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command succeeded (exit code 0)."""
        return self.exit_code == 0

    @property
    def failed(self) -> bool:
        """Whether the command failed."""
        return self.exit_code != 0

    @property
    def detail(self) -> str:
        """Human-readable failure detail: summary, stderr tail, or exit code."""
        if self.ok:
            return ""
        parts = []
        if self.error:
            parts.append(self.error)
        stderr = self.stderr.strip()
        if stderr:
            parts.append(stderr.splitlines()[-1])
        if not parts:
            parts.append(f"exit code {self.exit_code}")
        if self.command:
            parts.append(f"({self.command})")
        return " ".join(parts)

    @classmethod
    def success(
        cls,
        command: str = "",
        stdout: str = "",
        **kwargs: Any,
    ) -> ExecResult:
        """Create a success result."""
        return cls(command=command, exit_code=0, stdout=stdout, **kwargs)

    @classmethod
    def failure(
        cls,
        command: str = "",
        error: str = "",
        exit_code: int = 1,
        **kwargs: Any,
    ) -> ExecResult:
        """Create a failure result."""
        if exit_code == 0:
            raise ValueError("A failure result needs a nonzero exit code")
        return cls(command=command, exit_code=exit_code, error=error or None, **kwargs)
