"""
Tests for domain models — ExecResult, Identity, Step, profile schema.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from provisioner.core.models import (
    ExecResult,
    FailurePolicy,
    Identity,
    Profile,
    RunResult,
    Settings,
    Step,
    StepContext,
    StepOutcome,
    StepSpec,
    StepStatus,
    VerifySpec,
)
from provisioner.core.models.verification import (
    VerificationItem,
    VerificationReport,
    VerificationStatus,
)

# ── ExecResult ───────────────────────────────────────────────────────


class TestExecResult:
    def test_success(self):
        r = ExecResult.success(command="apt-get update", stdout="ok")
        assert r.ok
        assert not r.failed
        assert r.detail == ""
        assert r.attempts == 1

    def test_failure_detail_uses_last_stderr_line(self):
        r = ExecResult(command="pipx install x", exit_code=1, stderr="line one\nfatal: no network\n")
        assert r.failed
        assert r.detail == "fatal: no network (pipx install x)"

    def test_failure_detail_falls_back_to_exit_code(self):
        assert ExecResult(exit_code=100).detail == "exit code 100"

    def test_failure_requires_nonzero_exit(self):
        with pytest.raises(ValueError):
            ExecResult.failure(error="x", exit_code=0)

    def test_failure_constructor(self):
        r = ExecResult.failure(command="git clone", error="Command not found: git", exit_code=127)
        assert r.exit_code == 127
        assert r.detail.startswith("Command not found: git")


# ── Identity ─────────────────────────────────────────────────────────


class TestIdentity:
    def test_paths_and_env(self, identity, home):
        assert identity.local_bin == home / ".local" / "bin"
        assert identity.home_path(".config", "i3") == home / ".config" / "i3"
        assert identity.env() == {"HOME": str(home), "USER": "alice", "LOGNAME": "alice"}

    @pytest.mark.parametrize("username,uid", [("root", 1000), ("alice", 0)])
    def test_rejects_superuser(self, username, uid):
        with pytest.raises(ValidationError):
            Identity(username=username, home=Path("/root"), uid=uid, gid=0)

    def test_frozen(self, identity):
        with pytest.raises(ValidationError):
            identity.username = "bob"


# ── StepContext ──────────────────────────────────────────────────────


class TestStepContext:
    def test_expand_tokens(self, context, home, settings):
        text = context.expand("{home}/x {user} {venv}/bin {wrapper_dir}")
        assert text == f"{home}/x alice {settings.venv_path}/bin {settings.wrapper_dir}"

    def test_expand_leaves_other_braces(self, context):
        assert context.expand("${colors.primary} { echo; }") == "${colors.primary} { echo; }"

    def test_expand_path_relative_to_home(self, context, home):
        assert context.expand_path(".config/kitty/kitty.conf") == home / ".config/kitty/kitty.conf"
        assert context.expand_path("/etc/profile.d/x.sh") == Path("/etc/profile.d/x.sh")

    def test_shell_profile(self, context, home):
        assert context.shell_profile == home / ".zshrc"

    def test_adapter_lookup(self, context):
        assert context.adapter("apt").name == "apt"
        with pytest.raises(KeyError):
            context.adapter("brew")


# ── Step / outcomes ──────────────────────────────────────────────────


class TestStep:
    def test_defaults(self):
        step = Step(name="x", action=lambda ctx: ExecResult.success())
        assert step.policy == FailurePolicy.TOLERANT
        assert not step.fatal
        assert not step.retryable
        assert step.to_dict()["idempotent"] is False

    def test_no_check_is_never_satisfied(self, context):
        assert not Step(name="x", action=lambda ctx: ExecResult.success()).is_satisfied(context)

    def test_outcome_flags(self):
        assert StepOutcome(step_name="a", status=StepStatus.SKIPPED, attempts=0).ok
        assert StepOutcome(step_name="a", status=StepStatus.FAILED_FATAL).failed
        cancelled = StepOutcome(step_name="a", status=StepStatus.CANCELLED)
        assert not cancelled.ok and not cancelled.failed

    def test_run_result_status(self):
        assert RunResult().status == "ok"
        assert RunResult(cancelled=True, aborted=True).status == "cancelled"
        tolerated = RunResult(outcomes=[StepOutcome(step_name="a", status=StepStatus.FAILED_TOLERATED)])
        assert tolerated.status == "partial"
        assert not tolerated.has_fatal


# ── Verification ─────────────────────────────────────────────────────


class TestVerificationReport:
    def test_counts_and_groups(self):
        items = [
            VerificationItem("nmap", lambda: True, group="network", status=VerificationStatus.PRESENT),
            VerificationItem("dig", lambda: True, group="dns", status=VerificationStatus.MISSING),
            VerificationItem("obsidian", lambda: True, optional=True, status=VerificationStatus.MISSING),
        ]
        report = VerificationReport(items=items)
        assert (report.total, report.present, report.missing) == (3, 1, 2)
        assert [i.capability for i in report.missing_required] == ["dig"]
        assert list(report.groups) == ["network", "dns", "tools"]
        assert report.to_dict()["items"][0]["status"] == "present"


# ── Profile schema ───────────────────────────────────────────────────


class TestProfileSchema:
    def test_minimal(self):
        profile = Profile(name="p")
        assert profile.steps == []
        assert profile.settings.venv_path == "/opt/security-tools-venv"
        assert profile.settings.retry.to_policy().total_backoff == 450

    def test_required_fields_per_kind(self):
        with pytest.raises(ValidationError, match="requires 'packages'"):
            StepSpec(name="a", kind="apt")
        with pytest.raises(ValidationError, match="requires 'repo'"):
            StepSpec(name="s", kind="source")

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            StepSpec(name="  ", kind="apt_update")

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            StepSpec(name="x", kind="brew")

    def test_retryable_defaults_by_kind(self):
        assert StepSpec(name="a", kind="apt", packages=["nmap"]).is_retryable
        assert not StepSpec(name="w", kind="wrapper", path="x", content="y").is_retryable
        assert not StepSpec(name="a", kind="apt", packages=["nmap"], retryable=False).is_retryable

    def test_installed_name(self):
        spec = StepSpec(name="n", kind="pipx", package="git+https://x/NetExec", provides="netexec")
        assert spec.installed_name == "netexec"
        assert StepSpec(name="i", kind="pipx", package="impacket").installed_name == "impacket"

    def test_nested_alternatives_rejected(self):
        inner = {"name": "i", "kind": "first_success",
                 "alternatives": [{"name": "x", "kind": "apt_update"}]}
        with pytest.raises(ValidationError, match="cannot nest"):
            StepSpec(name="o", kind="first_success", alternatives=[inner])

    def test_duplicate_step_names(self):
        with pytest.raises(ValidationError, match="duplicate"):
            Profile(name="p", steps=[
                {"name": "x", "kind": "apt_update"},
                {"name": "x", "kind": "apt_update"},
            ])

    def test_duplicate_expanded_package_names(self):
        with pytest.raises(ValidationError, match="duplicate step name: 'pkgs:ldap3'"):
            Profile(name="p", steps=[
                {"name": "pkgs", "kind": "venv_packages", "packages": ["ldap3", "ldap3>=2.9"]},
            ])

    def test_package_step_name_clashes_with_plain_step(self):
        with pytest.raises(ValidationError, match="'pkgs:ldap3'"):
            Profile(name="p", steps=[
                {"name": "pkgs", "kind": "venv_packages", "packages": ["ldap3"]},
                {"name": "pkgs:ldap3", "kind": "apt_update"},
            ])

    def test_step_names(self):
        spec = StepSpec(name="pkgs", kind="venv_packages", packages=["ldap3>=2.9", "flask"])
        assert spec.step_names == ["pkgs:ldap3", "pkgs:flask"]
        assert StepSpec(name="u", kind="apt_update").step_names == ["u"]

    def test_get_step(self):
        profile = Profile(name="p", steps=[{"name": "x", "kind": "apt_update"}])
        assert profile.get_step("x").kind == "apt_update"
        assert profile.get_step("y") is None

    def test_verify_needs_exactly_one_probe(self):
        assert VerifySpec(capability="nmap", binary="nmap").probe_kind == "binary"
        with pytest.raises(ValidationError):
            VerifySpec(capability="x")
        with pytest.raises(ValidationError):
            VerifySpec(capability="x", binary="a", path="/b")

    def test_settings_retry_validation(self):
        with pytest.raises(ValidationError):
            Settings(retry={"max_attempts": 0})
