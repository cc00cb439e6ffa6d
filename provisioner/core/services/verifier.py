"""
Verifier — re-derive what is actually installed after a run.

Probes are independent of step outcomes. A step may report success
while its capability is still absent (a pipx install that exited 0 but
put nothing on PATH); the report shows what is there, not what was
attempted.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import shutil
from collections.abc import Iterable, Sequence
from pathlib import Path

from provisioner.core.models.identity import Identity
from provisioner.core.models.profile import Profile, VerifySpec
from provisioner.core.models.step import StepContext
from provisioner.core.models.verification import (
    Probe,
    VerificationItem,
    VerificationReport,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

# Where tools land that a root process's PATH usually misses
_SYSTEM_DIRS = ("/usr/local/sbin", "/usr/local/bin", "/usr/sbin", "/usr/bin", "/sbin", "/bin", "/snap/bin")


def search_path(identity: Identity | None = None, extra_dirs: Sequence[Path | str] = ()) -> str:
    """PATH covering the process, the system dirs and the user's tool dirs."""
    dirs = [str(d) for d in extra_dirs]
    if identity is not None:
        dirs += [str(identity.local_bin), str(identity.home_path(".cargo", "bin"))]
    dirs += os.environ.get("PATH", "").split(os.pathsep)
    dirs += _SYSTEM_DIRS
    return os.pathsep.join(dict.fromkeys(d for d in dirs if d))


def resolve_binary(
    name: str,
    identity: Identity | None = None,
    extra_dirs: Sequence[Path | str] = (),
) -> str | None:
    """Full path of ``name`` on the extended search path, or None."""
    return shutil.which(name, path=search_path(identity, extra_dirs))


def verify(items: Iterable[VerificationItem]) -> VerificationReport:
    """Run every probe, in order.

    A probe that raises counts as MISSING with the error as detail; one
    broken probe never hides the rest.
    """
    evaluated = []
    for item in items:
        try:
            present = bool(item.probe())
            status = VerificationStatus.PRESENT if present else VerificationStatus.MISSING
            detail = ""
        except Exception as e:
            logger.warning("Probe for '%s' raised: %s", item.capability, e)
            status = VerificationStatus.MISSING
            detail = f"probe error: {e}"
        evaluated.append(dataclasses.replace(item, status=status, detail=detail))

    report = VerificationReport(items=evaluated)
    logger.info("Verification: %d/%d present", report.present, report.total)
    return report


def build_probe(spec: VerifySpec, context: StepContext) -> Probe:
    """The probe for one verification declaration."""
    kind = spec.probe_kind
    if kind == "binary":
        return lambda: resolve_binary(spec.binary, context.identity, [context.wrapper_dir]) is not None
    if kind == "module":
        return lambda: context.adapter("python").can_import(context.venv_path, spec.module)
    if kind == "path":
        return lambda: context.expand_path(spec.path).exists()
    if kind == "apt":
        return lambda: context.adapter("apt").is_installed(spec.apt)
    if kind == "pipx":
        return lambda: context.adapter("pipx").is_installed(context.identity, spec.pipx)
    raise ValueError(f"verification '{spec.capability}' has no probe")


def build_verification_items(profile: Profile, context: StepContext) -> list[VerificationItem]:
    return [
        VerificationItem(
            capability=spec.capability,
            probe=build_probe(spec, context),
            group=spec.group,
            optional=spec.optional,
        )
        for spec in profile.verify
    ]
