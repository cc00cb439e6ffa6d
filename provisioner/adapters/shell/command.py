"""
Shell executor — run external commands and capture their result.

This is the SINGLE PLACE where ``subprocess.run`` is called. Commands
are argument vectors, never shell strings: the executor does not
interpret or sanitize command content beyond argument boundaries.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from collections.abc import Sequence

from provisioner.adapters.base import ExecOptions
from provisioner.core.models.result import (
    EXIT_NOT_EXECUTABLE,
    EXIT_NOT_FOUND,
    EXIT_TIMEOUT,
    ExecResult,
)

logger = logging.getLogger(__name__)

# Keep the tail of long outputs (apt and pip are chatty)
_OUTPUT_TAIL = 4000


def _tail(text: str | None) -> str:
    if not text:
        return ""
    return text[-_OUTPUT_TAIL:]


class ShellExecutor:
    """Execute commands, optionally as the target user.

    Args:
        default_timeout: Seconds before a command is killed, unless the
            call's options say otherwise.
    """

    name = "shell"

    def __init__(self, default_timeout: int = 1800):
        self._default_timeout = default_timeout

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        options: ExecOptions | None = None,
    ) -> ExecResult:
        options = options or ExecOptions()
        argv = [command, *args]
        printable = shlex.join(argv)
        timeout = options.timeout or self._default_timeout

        env = os.environ.copy()
        cwd = options.cwd
        drop: dict = {}
        if options.identity is not None:
            identity = options.identity
            env.update(identity.env())
            cwd = cwd or str(identity.home)
            if os.geteuid() == 0 and identity.uid != os.geteuid():
                drop = {"user": identity.uid, "group": identity.gid, "extra_groups": []}
        env.update(options.env)
        if options.extra_path:
            env["PATH"] = os.pathsep.join([*options.extra_path, env.get("PATH", "")])

        who = options.identity.username if options.identity else "root"
        logger.debug("Executing as %s: %s (cwd=%s)", who, printable, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=options.input,
                env=env,
                cwd=cwd,
                **drop,
            )
        except subprocess.TimeoutExpired:
            return ExecResult.failure(
                command=printable,
                error=f"Command timed out after {timeout}s",
                exit_code=EXIT_TIMEOUT,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except FileNotFoundError:
            if cwd and not os.path.isdir(cwd):
                return ExecResult.failure(
                    command=printable,
                    error=f"Working directory does not exist: {cwd}",
                )
            return ExecResult.failure(
                command=printable,
                error=f"Command not found: {command}",
                exit_code=EXIT_NOT_FOUND,
            )
        except PermissionError as e:
            return ExecResult.failure(
                command=printable,
                error=f"Permission denied: {e}",
                exit_code=EXIT_NOT_EXECUTABLE,
            )
        except (OSError, ValueError) as e:
            return ExecResult.failure(command=printable, error=f"Command execution error: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            logger.debug("%s exited with %d", printable, result.returncode)

        return ExecResult(
            command=printable,
            exit_code=result.returncode,
            stdout=_tail(result.stdout),
            stderr=_tail(result.stderr),
            duration_ms=elapsed_ms,
            metadata={"user": who, "cwd": cwd},
        )
