"""
Profile loader — reads a provisioning profile into domain models.

Reads YAML, validates against the Pydantic schema, and returns a typed
Profile. Resolution order for the profile file:

    --config PATH  >  PROVISION_CONFIG env var  >  packaged default
"""

from __future__ import annotations

import logging
import os
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from provisioner.core.models.profile import Profile

logger = logging.getLogger(__name__)

PROFILE_ENV_VAR = "PROVISION_CONFIG"
DEFAULT_PROFILE = "default_profile.yml"
_DATA_PACKAGE = "provisioner.data"


class ConfigError(Exception):
    """Raised when a profile is missing or invalid."""


def find_profile_file(environ: dict[str, str] | None = None) -> Path | None:
    """Profile named by PROVISION_CONFIG, or None to use the packaged default."""
    environ = os.environ if environ is None else environ
    raw = environ.get(PROFILE_ENV_VAR, "").strip()
    return Path(raw).expanduser() if raw else None


def default_profile_text() -> str:
    """YAML text of the profile shipped inside the package."""
    return resources.files(_DATA_PACKAGE).joinpath(DEFAULT_PROFILE).read_text(encoding="utf-8")


def _format_validation_error(e: ValidationError) -> str:
    problems = []
    for error in e.errors():
        location = ".".join(str(part) for part in error["loc"]) or "profile"
        problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)


def parse_profile(raw: str, source: str = "<profile>") -> Profile:
    """Validate profile YAML text.

    Raises:
        ConfigError: invalid YAML, non-mapping root, or schema violation.
    """
    try:
        data: Any = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {source}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {source}, got {type(data).__name__}")

    # The YAML may wrap everything under a "profile" key or be flat
    if isinstance(data.get("profile"), dict):
        data = {**data["profile"], **{k: v for k, v in data.items() if k != "profile"}}

    try:
        profile = Profile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid profile {source}: {_format_validation_error(e)}"
        ) from e

    logger.info(
        "Loaded profile '%s' with %d steps and %d checks",
        profile.name, len(profile.steps), len(profile.verify),
    )
    return profile


def load_profile(path: Path | None = None) -> Profile:
    """Load and validate a provisioning profile.

    Args:
        path: Explicit profile path. If None, PROVISION_CONFIG is
            consulted, then the packaged default is used.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_profile_file()

    if path is None:
        logger.debug("Loading packaged default profile")
        try:
            return parse_profile(default_profile_text(), source=f"<packaged {DEFAULT_PROFILE}>")
        except (OSError, ModuleNotFoundError) as e:
            raise ConfigError(f"Cannot read packaged profile: {e}") from e

    if not path.is_file():
        raise ConfigError(f"Profile not found: {path}")

    logger.debug("Loading profile from %s", path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    return parse_profile(raw, source=str(path))
