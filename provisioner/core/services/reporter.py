"""
Reporter — the operator-facing summary of a run.

Renders step outcomes, aggregate counts, verification results and
follow-up instructions as tagged lines:

    [+] green   success / present
    [*] yellow  skipped, tolerated failure, warning
    [!] red     fatal failure, missing capability
    [-] cyan    cancelled by the operator

Rendering never fails the process: any error while formatting is
replaced with a one-line fallback.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import click

from provisioner.core.models.identity import Identity
from provisioner.core.models.step import RunResult, Step, StepOutcome, StepStatus
from provisioner.core.models.verification import VerificationReport

logger = logging.getLogger(__name__)

FALLBACK = "[!] summary unavailable"

_TAGS: dict[StepStatus, tuple[str, str]] = {
    StepStatus.SUCCEEDED: ("[+]", "green"),
    StepStatus.SKIPPED: ("[*]", "yellow"),
    StepStatus.FAILED_TOLERATED: ("[*]", "yellow"),
    StepStatus.FAILED_FATAL: ("[!]", "red"),
    StepStatus.CANCELLED: ("[-]", "cyan"),
}

_LABELS: dict[StepStatus, str] = {
    StepStatus.SUCCEEDED: "done",
    StepStatus.SKIPPED: "already satisfied",
    StepStatus.FAILED_TOLERATED: "failed (continuing)",
    StepStatus.FAILED_FATAL: "FAILED (fatal)",
    StepStatus.CANCELLED: "cancelled",
}


def _style(text: str, fg: str, color: bool, bold: bool = False) -> str:
    return click.style(text, fg=fg, bold=bold) if color else text


def status_line(step: Step, outcome: StepOutcome, color: bool = True) -> str:
    """One line for a finished step, as printed live during a run."""
    tag, fg = _TAGS[outcome.status]
    line = f"{tag} {step.name}: {_LABELS[outcome.status]}"
    if outcome.attempts > 1:
        line += f" after {outcome.attempts} attempts"
    if outcome.detail and outcome.status not in (StepStatus.SUCCEEDED, StepStatus.SKIPPED):
        line += f" ({outcome.detail})"
    return _style(line, fg, color)


def _headline(run: RunResult, color: bool) -> str:
    if run.cancelled:
        return _style("[-] Run CANCELLED by operator; remaining steps were not attempted", "cyan", color, True)
    if run.aborted:
        return _style("[!] Run ABORTED: a required step failed", "red", color, True)
    if run.tolerated:
        return _style("[*] Run finished with tolerated failures", "yellow", color, True)
    return _style("[+] Run finished successfully", "green", color, True)


def _render(
    run: RunResult | None,
    verification: VerificationReport | None,
    identity: Identity | None,
    follow_up: Sequence[str],
    color: bool,
) -> str:
    lines: list[str] = []

    if run is not None:
        lines.append(_style("Steps", "white", color, True))
        for outcome in run.outcomes:
            tag, fg = _TAGS[outcome.status]
            text = f"  {tag} {outcome.step_name:<32} {outcome.status.value}"
            if outcome.detail and outcome.failed:
                text += f"  {outcome.detail}"
            lines.append(_style(text, fg, color))
        lines.append("")
        lines.append(
            f"  succeeded: {run.succeeded}  skipped: {run.skipped}  "
            f"tolerated: {run.tolerated}  fatal: {run.fatal}  cancelled: {run.interrupted}"
        )
        lines.append(_headline(run, color))
        lines.append("")

    if verification is not None:
        lines.append(_style(
            f"Verification ({verification.present}/{verification.total} present)",
            "white", color, True,
        ))
        for group, items in verification.groups.items():
            lines.append(f"  {group}")
            for item in items:
                if item.present:
                    lines.append(_style(f"    [+] {item.capability}: Present", "green", color))
                    continue
                tag, fg = ("[*]", "yellow") if item.optional else ("[!]", "red")
                text = f"    {tag} {item.capability}: Missing"
                if item.detail:
                    text += f" ({item.detail})"
                lines.append(_style(text, fg, color))
        lines.append("")

    if follow_up and not (run is not None and run.cancelled):
        lines.append(_style("Next steps", "white", color, True))
        for index, instruction in enumerate(follow_up, start=1):
            if identity is not None:
                instruction = instruction.replace("{user}", identity.username)
                instruction = instruction.replace("{home}", str(identity.home))
            lines.append(f"  {index}. {instruction}")
        lines.append("")

    return "\n".join(lines).rstrip("\n")


def render(
    run: RunResult | None,
    verification: VerificationReport | None = None,
    *,
    identity: Identity | None = None,
    follow_up: Sequence[str] = (),
    color: bool = True,
) -> str:
    """Format a run and its verification for the operator.

    Returns FALLBACK instead of raising when anything goes wrong.
    """
    try:
        return _render(run, verification, identity, follow_up, color)
    except Exception as e:
        logger.error("Rendering the summary failed: %s", e)
        return FALLBACK
