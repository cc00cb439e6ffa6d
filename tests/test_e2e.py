"""
End-to-end tests for the install and verify use cases.

Everything below the executor is real: profile parsing, the step
catalog, the runner, file writes under tmp_path, verification and the
ledger. Commands go to a MockExecutor.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from types import SimpleNamespace

import pytest

from provisioner.adapters.mock import MockExecutor
from provisioner.adapters.registry import build_registry
from provisioner.core.config.loader import parse_profile
from provisioner.core.models.step import StepStatus
from provisioner.core.persistence.ledger import RunLedger
from provisioner.core.services.identity import NoTargetUser
from provisioner.core.use_cases.install import (
    EXIT_CANCELLED,
    EXIT_FAILED,
    EXIT_OK,
    run_install,
)
from provisioner.core.use_cases.verify import run_verify


def plenty_of_disk(path):
    return SimpleNamespace(free=100 * 1024 ** 3)


def _profile_yaml(tmp_path: Path) -> str:
    return textwrap.dedent(f"""\
        name: e2e
        settings:
          log_file: "{tmp_path}/log/install.log"
          ledger_file: "{tmp_path}/log/runs.ndjson"
          venv_path: "{tmp_path}/venv"
          wrapper_dir: "{tmp_path}/bin"
          retry:
            max_attempts: 3
            initial_backoff: 0
        steps:
          - name: apt-update
            kind: apt_update
            policy: fatal
          - name: apt-base
            kind: apt
            packages: [git, nmap]
            policy: fatal
          - name: pipx-netexec
            kind: pipx
            package: netexec
          - name: venv
            kind: venv
            policy: fatal
          - name: venv-packages
            kind: venv_packages
            packages: [ldap3, netifaces]
          - name: responder-wrapper
            kind: wrapper
            path: responder
            content: |
              #!/bin/bash
              exec "{{venv}}/bin/python" "{{venv}}/responder/Responder.py" "$@"
          - name: zshrc
            kind: file
            path: .zshrc
            content: "export ZSH={{home}}/.oh-my-zsh\\n"
          - name: zshrc-aliases
            kind: profile_block
            content: "alias nxc=netexec\\n"
        verify:
          - capability: responder
            binary: responder
            group: wrappers
          - capability: zshrc
            path: .zshrc
            group: desktop
          - capability: netexec
            pipx: netexec
            group: pipx
            optional: true
        follow_up:
          - "Log out and back in as {{user}}"
    """)


class Host:
    """A MockExecutor-backed machine for one test."""

    def __init__(self, tmp_path: Path, identity):
        self.tmp_path = tmp_path
        self.identity = identity
        self.executor = MockExecutor()
        self.executor.set_response("python3 --version", stdout="Python 3.12.3")
        self.profile = parse_profile(_profile_yaml(tmp_path), source="<e2e>")

    @property
    def ledger(self) -> RunLedger:
        return RunLedger(self.tmp_path / "log" / "runs.ndjson")

    def install(self, **kwargs):
        kwargs.setdefault("identity_resolver", lambda: self.identity)
        return run_install(
            self.profile,
            registry=build_registry(self.executor),
            disk_usage=plenty_of_disk,
            **kwargs,
        )


@pytest.fixture
def host(tmp_path, identity, monkeypatch):
    monkeypatch.setenv("PATH", "")
    return Host(tmp_path, identity)


# ── Install ──────────────────────────────────────────────────────────


class TestInstall:
    def test_full_run(self, host, home, tmp_path):
        result = host.install()

        assert result.exit_code == EXIT_OK
        assert result.error is None
        assert result.preflight.ok
        assert result.run.status == "ok"
        names = [o.step_name for o in result.run.outcomes]
        assert names == [
            "apt-update", "apt-base", "pipx-netexec", "venv",
            "venv-packages:ldap3", "venv-packages:netifaces",
            "responder-wrapper", "zshrc", "zshrc-aliases",
        ]

        wrapper = tmp_path / "bin" / "responder"
        assert f'exec "{tmp_path}/venv/bin/python"' in wrapper.read_text()
        zshrc = (home / ".zshrc").read_text()
        assert zshrc.startswith(f"export ZSH={home}/.oh-my-zsh\n")
        assert "alias nxc=netexec" in zshrc

        assert result.verification.present == 2
        assert result.verification.missing_required == []

        (record,) = host.ledger.read_all()
        assert record.status == "ok"
        assert record.user == "alice"
        assert record.steps_total == 9

    def test_commands_run_in_order_with_identity(self, host):
        host.install()
        lines = host.executor.lines()
        assert lines[0] == f"ping -c 1 -W 2 {host.profile.settings.connectivity_host}"
        assert lines.index("apt-get update") < lines.index("apt-get install -y git nmap")
        pipx = next(c for c in host.executor.calls if c.argv[:2] == ["pipx", "install"])
        assert pipx.as_user == "alice"

    def test_second_run_skips_local_writes(self, host):
        host.install()
        second = host.install()

        status = {o.step_name: o.status for o in second.run.outcomes}
        assert status["venv"] == StepStatus.SKIPPED
        assert status["responder-wrapper"] == StepStatus.SKIPPED
        assert status["zshrc"] == StepStatus.SKIPPED
        assert status["zshrc-aliases"] == StepStatus.SKIPPED
        assert len(host.ledger.read_all()) == 2

    def test_identity_error_runs_nothing(self, host):
        def no_user():
            raise NoTargetUser("No delegating user found")

        result = host.install(identity_resolver=no_user)
        assert result.exit_code == EXIT_FAILED
        assert result.run is None
        assert "No delegating user" in result.error
        assert host.executor.call_count == 0
        assert host.ledger.read_all() == []

    def test_no_connectivity_stops_before_steps(self, host):
        host.executor.set_failure("ping", stderr="connect: Network is unreachable")
        result = host.install()

        assert result.exit_code == EXIT_FAILED
        assert result.run is None
        assert "No internet connectivity" in result.error
        assert not host.executor.called("apt-get")
        (record,) = host.ledger.read_all()
        assert record.status == "error"
        assert record.errors

    def test_skip_preflight(self, host):
        host.executor.set_failure("ping")
        result = host.install(skip_preflight=True)
        assert result.exit_code == EXIT_OK
        assert result.preflight is None

    def test_tolerated_failure(self, host):
        host.executor.set_failure("pipx install netexec", stderr="Could not build wheels")
        result = host.install()

        assert result.exit_code == EXIT_OK
        assert result.run.status == "partial"
        outcome = result.run.outcome_for("pipx-netexec")
        assert outcome.status == StepStatus.FAILED_TOLERATED
        assert outcome.attempts == 3
        assert result.run.outcome_for("zshrc-aliases").status == StepStatus.SUCCEEDED

    def test_fatal_failure_aborts(self, host):
        host.executor.set_failure("apt-get install", stderr="E: Unable to locate package")
        result = host.install()

        assert result.exit_code == EXIT_FAILED
        assert result.run.aborted
        assert [o.step_name for o in result.run.outcomes] == ["apt-update", "apt-base"]
        assert not host.executor.called("pipx install")
        assert host.ledger.read_all()[0].status == "aborted"

    def test_flaky_network_recovers(self, host):
        host.executor.set_sequence("apt-get update", [100, 100, 0])
        result = host.install()
        assert result.exit_code == EXIT_OK
        assert result.run.outcome_for("apt-update").attempts == 3

    def test_cancel_during_backoff(self, host, make_token):
        host.executor.set_failure("apt-get update")
        token = make_token(cancel_after=1)
        result = host.install(cancel=token)

        assert result.exit_code == EXIT_CANCELLED
        assert result.cancelled
        assert result.verification is None
        assert [o.status for o in result.run.outcomes] == [StepStatus.CANCELLED]
        assert host.ledger.read_all()[0].cancelled

    def test_listeners(self, host):
        seen = []
        host.install(on_outcome=lambda step, outcome: seen.append(outcome.step_name))
        assert seen[0] == "apt-update"
        assert len(seen) == 9

    def test_to_dict(self, host):
        data = host.install().to_dict()
        assert data["exit_code"] == 0
        assert data["user"] == "alice"
        assert data["run"]["total"] == 9
        assert data["verification"]["present"] == 2


# ── Verify ───────────────────────────────────────────────────────────


class TestVerify:
    def test_before_install(self, host):
        result = run_verify(
            host.profile,
            registry=build_registry(host.executor),
            identity_resolver=lambda: host.identity,
        )
        assert result.exit_code == 1
        assert [i.capability for i in result.report.missing_required] == ["responder", "zshrc"]

    def test_after_install(self, host):
        host.install()
        result = run_verify(
            host.profile,
            registry=build_registry(host.executor),
            identity_resolver=lambda: host.identity,
        )
        assert result.exit_code == 0
        assert result.to_dict()["verification"]["missing"] == 1  # optional netexec

    def test_identity_error(self, host):
        def no_user():
            raise NoTargetUser("unknown user 'mallory'")

        result = run_verify(host.profile, identity_resolver=no_user)
        assert result.exit_code == 1
        assert result.report is None
