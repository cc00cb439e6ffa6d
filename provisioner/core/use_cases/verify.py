"""
Verify use case — probe the machine without installing anything.

Runs without elevation: when not root, the invoking user is the
target.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

from provisioner.adapters.registry import AdapterRegistry, build_registry
from provisioner.core.models.identity import Identity
from provisioner.core.models.profile import Profile
from provisioner.core.models.step import StepContext
from provisioner.core.models.verification import VerificationReport
from provisioner.core.services.identity import IdentityError, resolve
from provisioner.core.services.verifier import build_verification_items, verify

logger = logging.getLogger(__name__)


@dataclass
class VerifyResult:
    identity: Identity | None = None
    report: VerificationReport | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or self.report is None:
            return 1
        return 1 if self.report.missing_required else 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
        if self.identity:
            result["user"] = self.identity.username
        if self.report:
            result["verification"] = self.report.to_dict()
        return result


def run_verify(
    profile: Profile,
    *,
    registry: AdapterRegistry | None = None,
    identity_resolver: Callable[[], Identity] = partial(resolve, require_elevation=False),
) -> VerifyResult:
    """Probe every capability the profile expects."""
    result = VerifyResult()
    try:
        result.identity = identity_resolver()
    except IdentityError as e:
        result.error = str(e)
        return result

    if registry is None:
        from provisioner.adapters.shell.command import ShellExecutor

        registry = build_registry(ShellExecutor())

    context = StepContext(identity=result.identity, registry=registry, settings=profile.settings)
    result.report = verify(build_verification_items(profile, context))
    return result
