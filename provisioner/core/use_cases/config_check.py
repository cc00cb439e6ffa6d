"""
Config check use case — validate a profile and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import ConfigError, find_profile_file, load_profile
from provisioner.core.models.profile import Profile

# Kinds whose action is an arbitrary command: without creates/binary they rerun every time
_UNCHECKED_KINDS = ("command", "user_command", "source", "first_success")


@dataclass
class ConfigCheckResult:
    """Result of profile validation."""

    valid: bool = False
    profile: Profile | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "profile_name": self.profile.name if self.profile else None,
            "step_count": len(self.profile.steps) if self.profile else 0,
            "verify_count": len(self.profile.verify) if self.profile else 0,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate a provisioning profile.

    Args:
        config_path: Optional explicit profile path (default: env var,
            then the packaged profile).
    """
    result = ConfigCheckResult(config_path=config_path or find_profile_file())

    try:
        profile = load_profile(result.config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.profile = profile

    if not profile.steps:
        result.warnings.append("No steps defined. The profile installs nothing.")
    if not profile.verify:
        result.warnings.append("No verification entries. Nothing will be checked after a run.")

    for spec in profile.steps:
        if spec.kind in _UNCHECKED_KINDS and not (spec.creates or spec.binary):
            result.warnings.append(
                f"Step '{spec.name}' ({spec.kind}) has no 'creates' or 'binary' check "
                "and will run on every install."
            )

    result.valid = not result.errors
    return result
