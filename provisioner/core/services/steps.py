"""
Step catalog — turns profile step declarations into executable Steps.

Each declaration kind maps to an action builder and an idempotency
check builder. The builders only close over the declaration; the
identity, adapters and settings arrive through the StepContext at run
time, so the same step list can be planned without privilege.

Shared resources each kind touches (for auditing the fixed order):

    apt, apt_update, snapd   apt         package database
    snap                     snap
    pipx                     pipx, home  ~/.local of the target user
    pipx_links, wrapper      wrapper-dir /usr/local/bin
    venv, venv_packages      venv        the shared virtual environment
    source                   venv        when it installs into the venv
    file, user_command       home
    profile_block            shell-profile (append-only)
"""

from __future__ import annotations

import logging
import os
import pwd
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

from provisioner.adapters.base import ExecOptions
from provisioner.core.engine.runner import first_success_of, sequence_of
from provisioner.core.models.profile import Profile, StepSpec, distribution_name
from provisioner.core.models.result import ExecResult
from provisioner.core.models.step import Step, StepAction, StepCheck, StepContext
from provisioner.core.services.verifier import resolve_binary

logger = logging.getLogger(__name__)

ActionBuilder = Callable[[StepSpec], StepAction]
CheckBuilder = Callable[[StepSpec], StepCheck | None]


def profile_marker(context: StepContext, step_name: str) -> str:
    """Delimiter text of the shell-profile block owned by ``step_name``."""
    return f"{context.settings.profile_marker}:{step_name}"


# ── Action builders ─────────────────────────────────────────────


def _apt_update(spec: StepSpec) -> StepAction:
    return lambda ctx: ctx.adapter("apt").update()


def _apt(spec: StepSpec) -> StepAction:
    return lambda ctx: ctx.adapter("apt").install(spec.packages)


def _snapd(spec: StepSpec) -> StepAction:
    return sequence_of(
        lambda ctx: ctx.adapter("apt").install(["snapd"]),
        lambda ctx: ctx.adapter("snap").enable_socket(),
    )


def _snap(spec: StepSpec) -> StepAction:
    return lambda ctx: ctx.adapter("snap").install(spec.package, classic=spec.classic)


def _run_options(ctx: StepContext, spec: StepSpec, as_user: bool) -> ExecOptions:
    return ExecOptions(
        identity=ctx.identity if as_user else None,
        env={k: ctx.expand(v) for k, v in spec.env.items()},
        extra_path=[str(ctx.expand_path(p)) for p in spec.extra_path],
    )


def _command(as_user: bool) -> ActionBuilder:
    def build(spec: StepSpec) -> StepAction:
        def action(ctx: StepContext) -> ExecResult:
            argv = [ctx.expand(arg) for arg in spec.command]
            return ctx.registry.executor.run(argv[0], argv[1:], _run_options(ctx, spec, as_user))

        return action

    return build


def _pipx(spec: StepSpec) -> StepAction:
    def action(ctx: StepContext) -> ExecResult:
        extra_path = [str(ctx.expand_path(p)) for p in spec.extra_path]
        return ctx.adapter("pipx").install(ctx.identity, spec.package, extra_path)

    return action


def _link_pairs(ctx: StepContext, spec: StepSpec) -> list[tuple[Path, Path]]:
    """(installed entry point, system-wide link) for every declared name."""
    return [(ctx.identity.local_bin / name, ctx.wrapper_dir / name) for name in spec.links]


def _pipx_links(spec: StepSpec) -> StepAction:
    def action(ctx: StepContext) -> ExecResult:
        fs = ctx.adapter("filesystem")
        linked, failures = [], []
        for target, link in _link_pairs(ctx, spec):
            if not target.exists():
                failures.append(f"{target.name}: entry point not installed")
                continue
            result = fs.symlink(target, link)
            if result.ok:
                linked.append(link.name)
            else:
                failures.append(result.detail)
        if failures:
            return ExecResult.failure(
                command=f"link into {ctx.wrapper_dir}", error="; ".join(failures)
            )
        return ExecResult.success(
            command=f"link into {ctx.wrapper_dir}",
            stdout=f"linked: {', '.join(linked)}",
        )

    return action


def _venv(spec: StepSpec) -> StepAction:
    return sequence_of(
        lambda ctx: ctx.adapter("filesystem").remove_tree(ctx.venv_path),
        lambda ctx: ctx.adapter("python").create(ctx.venv_path),
        lambda ctx: ctx.adapter("python").pip_install(
            ctx.venv_path, ["--upgrade", "pip", "setuptools", "wheel"]
        ),
    )


def _pip_package(requirement: str) -> StepAction:
    return lambda ctx: ctx.adapter("python").pip_install(ctx.venv_path, [requirement])


def _source(spec: StepSpec) -> StepAction:
    def action(ctx: StepContext) -> ExecResult:
        fs = ctx.adapter("filesystem")
        temp_root = None
        if spec.install_dir:
            dest = ctx.expand_path(spec.install_dir)
            # A checkout left by an interrupted run would block the clone
            removed = fs.remove_tree(dest)
            if removed.failed:
                return removed
        else:
            temp_root = Path(tempfile.mkdtemp(prefix="provision-"))
            dest = temp_root / spec.name.replace("/", "-")

        try:
            result = ctx.adapter("git").clone(spec.repo, dest)
            if result.failed:
                return result
            for command in spec.build:
                argv = [ctx.expand(arg) for arg in command]
                result = ctx.registry.executor.run(
                    argv[0], argv[1:], ExecOptions(cwd=str(dest))
                )
                if result.failed:
                    return result
            return result
        finally:
            if temp_root is not None:
                shutil.rmtree(temp_root, ignore_errors=True)

    return action


def _first_success(spec: StepSpec) -> StepAction:
    return first_success_of(*[_action_for(alt) for alt in spec.alternatives])


def _file(spec: StepSpec) -> StepAction:
    def action(ctx: StepContext) -> ExecResult:
        owner = ctx.identity if spec.owner == "user" else None
        return ctx.adapter("filesystem").write_file(
            ctx.expand_path(spec.path), ctx.expand(spec.content), spec.mode, owner
        )

    return action


def _wrapper(spec: StepSpec) -> StepAction:
    return lambda ctx: ctx.adapter("filesystem").write_file(
        ctx.wrapper_dir / spec.path, ctx.expand(spec.content), 0o755
    )


def _profile_block(spec: StepSpec) -> StepAction:
    return lambda ctx: ctx.adapter("filesystem").append_block(
        ctx.shell_profile,
        profile_marker(ctx, spec.name),
        ctx.expand(spec.content),
        owner=ctx.identity,
    )


def _login_shell(spec: StepSpec) -> StepAction:
    return lambda ctx: ctx.registry.executor.run(
        "chsh", ["-s", spec.shell, ctx.identity.username]
    )


def _chown(spec: StepSpec) -> StepAction:
    def action(ctx: StepContext) -> ExecResult:
        fs = ctx.adapter("filesystem")
        done = []
        for raw in spec.paths:
            path = ctx.expand_path(raw)
            if not path.exists():
                logger.debug("chown: %s does not exist, skipping", path)
                continue
            result = fs.chown_tree(path, ctx.identity)
            if result.failed:
                return result
            done.append(str(path))
        return ExecResult.success(command="chown -R", stdout=", ".join(done))

    return action


_ACTIONS: dict[str, ActionBuilder] = {
    "apt_update": _apt_update,
    "apt": _apt,
    "snapd": _snapd,
    "snap": _snap,
    "user_command": _command(as_user=True),
    "command": _command(as_user=False),
    "pipx": _pipx,
    "pipx_links": _pipx_links,
    "venv": _venv,
    "source": _source,
    "first_success": _first_success,
    "file": _file,
    "wrapper": _wrapper,
    "profile_block": _profile_block,
    "login_shell": _login_shell,
    "chown": _chown,
}


def _action_for(spec: StepSpec) -> StepAction:
    try:
        return _ACTIONS[spec.kind](spec)
    except KeyError:
        raise ValueError(f"Step kind '{spec.kind}' has no single action") from None


# ── Idempotency checks ──────────────────────────────────────────


def _declared_check(spec: StepSpec) -> StepCheck | None:
    """``creates`` / ``binary`` declared on the step itself."""
    if spec.creates:
        return lambda ctx: ctx.expand_path(spec.creates).exists()
    if spec.binary:
        return lambda ctx: resolve_binary(
            spec.binary, ctx.identity, [ctx.wrapper_dir]
        ) is not None
    return None


def _links_current(ctx: StepContext, spec: StepSpec) -> bool:
    pairs = _link_pairs(ctx, spec)
    return bool(pairs) and all(
        target.exists() and link.is_symlink() and Path(os.readlink(link)) == target
        for target, link in pairs
    )


def _shell_is(ctx: StepContext, shell: str) -> bool:
    try:
        return pwd.getpwnam(ctx.identity.username).pw_shell == shell
    except KeyError:
        return False


_CHECKS: dict[str, CheckBuilder] = {
    "apt": lambda spec: lambda ctx: ctx.adapter("apt").all_installed(spec.packages),
    "snapd": lambda spec: lambda ctx: ctx.adapter("snap").is_available(),
    "snap": lambda spec: lambda ctx: ctx.adapter("snap").is_installed(spec.installed_name),
    "pipx": lambda spec: lambda ctx: ctx.adapter("pipx").is_installed(
        ctx.identity, spec.installed_name
    ),
    "pipx_links": lambda spec: lambda ctx: _links_current(ctx, spec),
    "venv": lambda spec: lambda ctx: ctx.adapter("python").is_healthy(ctx.venv_path),
    "file": lambda spec: (
        (lambda ctx: ctx.adapter("filesystem").file_matches(
            ctx.expand_path(spec.path), ctx.expand(spec.content)))
        if spec.overwrite
        else (lambda ctx: ctx.expand_path(spec.path).exists())
    ),
    "wrapper": lambda spec: lambda ctx: ctx.adapter("filesystem").file_matches(
        ctx.wrapper_dir / spec.path, ctx.expand(spec.content)
    ),
    "profile_block": lambda spec: lambda ctx: ctx.adapter("filesystem").has_block(
        ctx.shell_profile, profile_marker(ctx, spec.name)
    ),
    "login_shell": lambda spec: lambda ctx: _shell_is(ctx, spec.shell),
}


def _check_for(spec: StepSpec) -> StepCheck | None:
    declared = _declared_check(spec)
    if declared is not None:
        return declared
    builder = _CHECKS.get(spec.kind)
    return builder(spec) if builder else None


# ── Resources ───────────────────────────────────────────────────


def _resources(spec: StepSpec) -> tuple[str, ...]:
    if spec.kind in ("apt_update", "apt", "snapd"):
        return ("apt",)
    if spec.kind == "snap":
        return ("snap",)
    if spec.kind == "pipx":
        return ("pipx", "home")
    if spec.kind in ("pipx_links", "wrapper"):
        return ("wrapper-dir",)
    if spec.kind in ("venv", "venv_packages"):
        return ("venv",)
    if spec.kind == "profile_block":
        return ("shell-profile",)
    if spec.kind in ("file", "user_command", "chown", "login_shell"):
        return ("home",)
    if spec.kind in ("source", "first_success", "command"):
        text = " ".join(
            [spec.install_dir, *(" ".join(c) for c in spec.build), " ".join(spec.command)]
            + [" ".join(" ".join(c) for c in alt.build) for alt in spec.alternatives]
        )
        return ("venv",) if "{venv}" in text else ()
    return ()


# ── Catalog ─────────────────────────────────────────────────────


def _describe(spec: StepSpec) -> str:
    if spec.description:
        return spec.description
    if spec.kind == "apt":
        return f"apt-get install {len(spec.packages)} packages"
    if spec.kind in ("pipx", "snap"):
        return f"{spec.kind} install {spec.package}"
    if spec.kind == "source":
        return f"build from {spec.repo}"
    return spec.kind.replace("_", " ")


def build_step(spec: StepSpec) -> list[Step]:
    """Steps for one declaration (``venv_packages`` yields one per package)."""
    if spec.kind == "venv_packages":
        return [
            Step(
                name=name,
                action=_pip_package(requirement),
                check=_venv_package_check(requirement),
                policy=spec.policy,
                retryable=spec.is_retryable,
                description=f"pip install {requirement} into the shared venv",
                resources=("venv",),
            )
            for name, requirement in zip(spec.step_names, spec.packages)
        ]

    return [
        Step(
            name=spec.name,
            action=_action_for(spec),
            check=_check_for(spec),
            policy=spec.policy,
            retryable=spec.is_retryable,
            description=_describe(spec),
            resources=_resources(spec),
        )
    ]


def _venv_package_check(requirement: str) -> StepCheck:
    dist = distribution_name(requirement)
    return lambda ctx: ctx.adapter("python").has_distribution(ctx.venv_path, dist)


def build_steps(profile: Profile) -> list[Step]:
    """The ordered step list of a profile."""
    steps: list[Step] = []
    for spec in profile.steps:
        steps.extend(build_step(spec))
    logger.debug("Built %d steps from profile '%s'", len(steps), profile.name)
    return steps
