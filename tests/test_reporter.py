"""
Tests for the reporter — operator-facing run summary.
"""

import click

from provisioner.core.models.result import ExecResult
from provisioner.core.models.step import RunResult, Step, StepOutcome, StepStatus
from provisioner.core.models.verification import (
    VerificationItem,
    VerificationReport,
    VerificationStatus,
)
from provisioner.core.services.reporter import FALLBACK, render, status_line


def outcome(name, status, detail=None, attempts=1):
    return StepOutcome(step_name=name, status=status, detail=detail, attempts=attempts)


def item(capability, present, group="tools", optional=False):
    status = VerificationStatus.PRESENT if present else VerificationStatus.MISSING
    return VerificationItem(capability, lambda: present, group=group, optional=optional, status=status)


MIXED = RunResult(outcomes=[
    outcome("apt-update", StepStatus.SUCCEEDED),
    outcome("venv", StepStatus.SKIPPED, attempts=0),
    outcome("hashcat", StepStatus.FAILED_TOLERATED, detail="make: not found"),
])


# ── Live status lines ────────────────────────────────────────────────


class TestStatusLine:
    def test_success(self):
        step = Step(name="apt-base", action=lambda ctx: ExecResult.success())
        line = status_line(step, outcome("apt-base", StepStatus.SUCCEEDED), color=False)
        assert line == "[+] apt-base: done"

    def test_retried_failure_shows_attempts_and_detail(self):
        step = Step(name="pipx-netexec", action=lambda ctx: ExecResult.success())
        line = status_line(
            step,
            outcome("pipx-netexec", StepStatus.FAILED_TOLERATED, "timed out", attempts=5),
            color=False,
        )
        assert line == "[*] pipx-netexec: failed (continuing) after 5 attempts (timed out)"

    def test_color(self):
        step = Step(name="venv", action=lambda ctx: ExecResult.success())
        line = status_line(step, outcome("venv", StepStatus.FAILED_FATAL, "boom"))
        assert click.unstyle(line) == "[!] venv: FAILED (fatal) (boom)"
        assert line != click.unstyle(line)


# ── Summary ──────────────────────────────────────────────────────────


class TestRender:
    def test_counts_and_headline(self):
        text = render(MIXED, color=False)
        assert "succeeded: 1  skipped: 1  tolerated: 1  fatal: 0  cancelled: 0" in text
        assert "[*] Run finished with tolerated failures" in text
        assert "make: not found" in text

    def test_clean_run(self):
        run = RunResult(outcomes=[outcome("a", StepStatus.SUCCEEDED)])
        assert "[+] Run finished successfully" in render(run, color=False)

    def test_aborted(self):
        run = RunResult(outcomes=[outcome("apt-update", StepStatus.FAILED_FATAL, "no network")],
                        aborted=True)
        text = render(run, color=False)
        assert "[!] Run ABORTED" in text
        assert "fatal: 1" in text

    def test_cancelled_is_distinct_from_failure(self):
        run = RunResult(outcomes=[outcome("pipx-netexec", StepStatus.CANCELLED)], cancelled=True)
        text = render(run, follow_up=["Log out and back in"], color=False)
        assert "[-] Run CANCELLED by operator" in text
        assert "ABORTED" not in text
        assert "Next steps" not in text

    def test_counts_add_up_on_interrupted_run(self):
        run = RunResult(
            outcomes=[
                outcome("apt-update", StepStatus.SUCCEEDED),
                outcome("venv", StepStatus.SKIPPED),
                outcome("pipx-netexec", StepStatus.CANCELLED),
            ],
            cancelled=True,
        )
        text = render(run, color=False)
        assert "succeeded: 1  skipped: 1  tolerated: 0  fatal: 0  cancelled: 1" in text
        assert run.interrupted == 1
        assert run.to_dict()["cancelled_steps"] == 1

    def test_verification_sections(self):
        report = VerificationReport(items=[
            item("nmap", True, group="network"),
            item("masscan", False, group="network"),
            item("obsidian", False, group="desktop", optional=True),
        ])
        text = render(None, report, color=False)
        assert "Verification (1/3 present)" in text
        assert "    [+] nmap: Present" in text
        assert "    [!] masscan: Missing" in text
        assert "    [*] obsidian: Missing" in text
        assert text.index("network") < text.index("desktop")

    def test_follow_up_substitution(self, identity, home):
        text = render(
            MIXED,
            identity=identity,
            follow_up=["Log in as {user}", "Edit {home}/.zshrc"],
            color=False,
        )
        assert "  1. Log in as alice" in text
        assert f"  2. Edit {home}/.zshrc" in text

    def test_no_color_has_no_escape_codes(self):
        assert "\x1b[" not in render(MIXED, color=False)

    def test_broken_input_falls_back(self):
        broken = RunResult(outcomes=[object()])
        assert render(broken) == FALLBACK
