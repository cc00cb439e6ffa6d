"""
Security desktop provisioner — CLI entrypoint.

Usage:
    sudo provision install
    provision plan
    provision verify
    provision history
    provision config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import (
    LOG_LEVEL_ENV_VAR,
    attach_log_file,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to a profile YAML (default: $PROVISION_CONFIG or the packaged profile).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision a security-tools desktop for the invoking user."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING")

    setup_logging(level=level)


def _load_profile(ctx: click.Context):
    """Load the selected profile or exit 1 with the error."""
    from provisioner.core.config.loader import ConfigError, load_profile

    try:
        return load_profile(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"[!] {e}", fg="red", err=True)
        sys.exit(1)


@cli.command()
@click.option("--skip-preflight", is_flag=True, help="Skip the connectivity and disk checks.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, skip_preflight: bool, as_json: bool) -> None:
    """Install and configure every tool in the profile.

    Must run elevated (sudo) from the desktop user's session; per-user
    tools are installed for that user, not for root. Safe to re-run:
    steps that are already satisfied are skipped.

    Exit status: 0 ok (tolerated failures allowed), 1 a required step
    or pre-flight failed, 130 interrupted.
    """
    from provisioner.core.reliability.cancellation import CancellationToken, cancel_on_interrupt
    from provisioner.core.services.reporter import render, status_line
    from provisioner.core.use_cases.install import run_install

    profile = _load_profile(ctx)
    log_path = attach_log_file(Path(profile.settings.log_file))
    live = not as_json and not ctx.obj.get("quiet", False)

    if live:
        click.secho(f"\n⚡ Provisioning: {profile.name}", fg="cyan", bold=True)
        click.echo(f"   Log: {log_path}")
        click.echo()

    def on_start(step) -> None:
        if ctx.obj.get("verbose"):
            click.secho(f"    … {step.name}", dim=True)

    def on_outcome(step, outcome) -> None:
        if live:
            click.echo(status_line(step, outcome))

    with cancel_on_interrupt(CancellationToken()) as token:
        result = run_install(
            profile,
            skip_preflight=skip_preflight,
            cancel=token,
            on_start=on_start if live else None,
            on_outcome=on_outcome,
        )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.preflight is not None:
        for check in result.preflight.warnings:
            click.secho(f"[*] {check.message}", fg="yellow")

    if result.error:
        click.secho(f"[!] {result.error}", fg="red", bold=True)

    if result.run is not None:
        click.echo()
        click.echo(render(
            result.run,
            result.verification,
            identity=result.identity,
            follow_up=profile.follow_up,
        ))

    click.echo()
    click.echo(f"Log: {log_path}")
    if result.exit_code:
        sys.exit(result.exit_code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(ctx: click.Context, as_json: bool) -> None:
    """Check which capabilities are present, without installing anything."""
    from provisioner.core.services.reporter import render
    from provisioner.core.use_cases.verify import run_verify

    profile = _load_profile(ctx)
    result = run_verify(profile)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"[!] {result.error}", fg="red")
        sys.exit(1)

    assert result.identity is not None
    click.secho(f"\n🔍 Verification for {result.identity.username}", fg="cyan", bold=True)
    click.echo()
    click.echo(render(None, result.report))
    click.echo()
    if result.exit_code:
        sys.exit(result.exit_code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool) -> None:
    """List the steps an install would run, in order, and which tools the host has."""
    from provisioner.adapters.registry import build_registry
    from provisioner.adapters.shell.command import ShellExecutor
    from provisioner.core.services.steps import build_steps

    profile = _load_profile(ctx)
    steps = build_steps(profile)
    tools = build_registry(ShellExecutor()).adapter_status()

    if as_json:
        click.echo(json.dumps(
            {
                "profile": profile.name,
                "steps": [s.to_dict() for s in steps],
                "tools": {name: info["available"] for name, info in tools.items()},
            },
            indent=2,
        ))
        return

    click.secho(f"\n📋 {profile.name}: {len(steps)} steps", fg="cyan", bold=True)
    if profile.description:
        click.echo(f"   {profile.description}")
    click.echo()

    for index, step in enumerate(steps, start=1):
        policy_color = "red" if step.fatal else "white"
        click.secho(f"   {index:>3}. {step.name}", fg=policy_color, nl=False)
        flags = [step.policy.value]
        if step.retryable:
            flags.append("retry")
        if step.check is None:
            flags.append("always runs")
        click.echo(f"  [{', '.join(flags)}]", nl=False)
        if step.resources:
            click.echo(f"  → {', '.join(step.resources)}", nl=False)
        click.echo()
        if ctx.obj.get("verbose") and step.description:
            click.echo(f"          {step.description}")

    click.echo()
    marks = [
        click.style(f"{name} ✓", fg="green") if info["available"]
        else click.style(f"{name} ✗", fg="yellow")
        for name, info in tools.items()
    ]
    click.echo(f"   Tools: {'  '.join(marks)}")
    click.echo()


@cli.command()
@click.option("-n", "limit", type=int, default=20, show_default=True, help="Runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent runs from the run ledger."""
    from provisioner.core.persistence.ledger import RunLedger

    profile = _load_profile(ctx)
    ledger = RunLedger(Path(profile.settings.ledger_file))
    records = ledger.read_recent(limit)

    if as_json:
        click.echo(json.dumps(
            {
                "total": ledger.entry_count(),
                "entries": [r.model_dump(mode="json") for r in records],
            },
            indent=2,
        ))
        return

    if not records:
        click.echo(f"No runs recorded in {ledger.path}")
        return

    colors = {"ok": "green", "partial": "yellow", "cancelled": "cyan"}
    click.secho(
        f"\n🕘 Last {len(records)} of {ledger.entry_count()} runs ({ledger.path})",
        fg="cyan",
        bold=True,
    )
    click.echo()
    for record in records:
        click.secho(f"   {record.timestamp[:19]}  {record.status:<9}",
                    fg=colors.get(record.status, "red"), nl=False)
        click.echo(
            f"  {record.user or '?':<12} {record.steps_total} steps, "
            f"{record.failed_tolerated} tolerated, {record.verified_missing} missing"
        )
    click.echo()


@cli.group()
def config() -> None:
    """Profile configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate a provisioning profile."""
    from provisioner.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.profile is not None  # guaranteed when valid
        click.secho("✅ Profile is valid", fg="green", bold=True)
        click.echo(f"   Profile: {result.profile.name}")
        click.echo(f"   Source: {result.config_path or 'packaged default'}")
        click.echo(f"   Steps: {len(result.profile.steps)}")
        click.echo(f"   Checks: {len(result.profile.verify)}")
    else:
        click.secho("❌ Profile errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
