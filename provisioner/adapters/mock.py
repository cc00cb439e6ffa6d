"""
Mock executor — universal test double for command execution.

Records every call and answers from scripted responses instead of
spawning processes. Responses are matched by argv prefix, longest
prefix first, so ``"apt-get install"`` can fail while ``"apt-get"``
succeeds.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field

from provisioner.adapters.base import ExecOptions
from provisioner.core.models.result import ExecResult


@dataclass
class MockCall:
    """One recorded invocation."""

    argv: list[str]
    options: ExecOptions = field(default_factory=ExecOptions)

    @property
    def line(self) -> str:
        return " ".join(self.argv)

    @property
    def as_user(self) -> str | None:
        return self.options.identity.username if self.options.identity else None


class MockExecutor:
    """Scripted executor for tests.

    By default every command succeeds with empty output.
    """

    name = "mock"

    def __init__(self, default_exit_code: int = 0, default_stdout: str = ""):
        self._default_exit_code = default_exit_code
        self._default_stdout = default_stdout
        self._responses: dict[tuple[str, ...], list[ExecResult]] = {}
        self._calls: list[MockCall] = []

    @property
    def calls(self) -> list[MockCall]:
        """All calls this mock has received."""
        return self._calls

    @property
    def call_count(self) -> int:
        return len(self._calls)

    def lines(self) -> list[str]:
        """Recorded calls as space-joined command lines."""
        return [c.line for c in self._calls]

    def called(self, prefix: str) -> bool:
        """Whether any call's argv starts with ``prefix``."""
        key = tuple(shlex.split(prefix))
        return any(tuple(c.argv[: len(key)]) == key for c in self._calls)

    def is_available(self) -> bool:
        return True

    def set_response(
        self,
        prefix: str,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Answer every call matching ``prefix`` with the same result."""
        self._responses[tuple(shlex.split(prefix))] = [
            ExecResult(command=prefix, exit_code=exit_code, stdout=stdout, stderr=stderr)
        ]

    def set_failure(self, prefix: str, stderr: str = "Mock failure", exit_code: int = 1) -> None:
        """Configure commands matching ``prefix`` to fail."""
        self.set_response(prefix, exit_code=exit_code, stderr=stderr)

    def set_sequence(self, prefix: str, exit_codes: Sequence[int]) -> None:
        """Answer successive matching calls with these exit codes.

        The last exit code repeats once the sequence is used up.
        """
        self._responses[tuple(shlex.split(prefix))] = [
            ExecResult(command=prefix, exit_code=code) for code in exit_codes
        ]

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        options: ExecOptions | None = None,
    ) -> ExecResult:
        argv = [command, *args]
        self._calls.append(MockCall(argv=argv, options=options or ExecOptions()))

        matches = [
            key for key in self._responses if tuple(argv[: len(key)]) == key
        ]
        if matches:
            key = max(matches, key=len)
            queue = self._responses[key]
            scripted = queue.pop(0) if len(queue) > 1 else queue[0]
            return scripted.model_copy(update={"command": shlex.join(argv)})

        return ExecResult(
            command=shlex.join(argv),
            exit_code=self._default_exit_code,
            stdout=self._default_stdout,
        )

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._calls.clear()
        self._responses.clear()
