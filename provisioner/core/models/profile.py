"""
Profile model — what a run installs and how it checks it.

Loaded from a profile YAML file. The profile is pure configuration
data: package lists, tool specs, file templates and verification
expectations. The step catalog turns it into executable Steps.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from provisioner.core.models.step import FailurePolicy
from provisioner.core.reliability.retry import RetryPolicy

StepKind = Literal[
    "apt_update",
    "apt",
    "snapd",
    "snap",
    "user_command",
    "command",
    "pipx",
    "pipx_links",
    "venv",
    "venv_packages",
    "source",
    "first_success",
    "file",
    "wrapper",
    "profile_block",
    "login_shell",
    "chown",
]

# Fields each kind cannot do without
_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "apt": ("packages",),
    "snap": ("package",),
    "user_command": ("command",),
    "command": ("command",),
    "pipx": ("package",),
    "pipx_links": ("links",),
    "venv_packages": ("packages",),
    "source": ("repo",),
    "first_success": ("alternatives",),
    "file": ("path", "content"),
    "wrapper": ("path", "content"),
    "profile_block": ("content",),
    "login_shell": ("shell",),
    "chown": ("paths",),
}

_VERSION_SPEC = re.compile(r"[<>=!~\[;\s]")


def distribution_name(requirement: str) -> str:
    """``"ldap3>=2.9"`` → ``"ldap3"``."""
    return _VERSION_SPEC.split(requirement, maxsplit=1)[0]


# Network-bound kinds retry by default; local writes never do
_RETRYABLE_KINDS = frozenset(
    {"apt_update", "apt", "snap", "user_command", "pipx", "venv_packages", "source"}
)


class RetrySettings(BaseModel):
    """Retry controller defaults for network-flaky steps (seconds)."""

    max_attempts: int = Field(default=5, ge=1)
    initial_backoff: float = Field(default=30.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_backoff: float = Field(default=600.0, ge=0)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_backoff=self.initial_backoff,
            multiplier=self.multiplier,
            max_backoff=self.max_backoff,
        )


class Settings(BaseModel):
    """Run-wide paths and thresholds."""

    log_file: str = "/var/log/security-tools-install.log"
    ledger_file: str = "/var/log/security-tools-runs.ndjson"
    venv_path: str = "/opt/security-tools-venv"
    wrapper_dir: str = "/usr/local/bin"
    profile_file: str = ".zshrc"                  # relative to the user's home
    profile_marker: str = "security-provisioner"
    min_free_gb: float = 5.0
    connectivity_host: str = "8.8.8.8"
    retry: RetrySettings = Field(default_factory=RetrySettings)


class StepSpec(BaseModel):
    """A step declaration.

    Only the fields relevant to ``kind`` are used. ``creates`` and
    ``binary`` override the kind's own idempotency check.
    """

    name: str
    kind: StepKind
    description: str = ""
    policy: FailurePolicy = FailurePolicy.TOLERANT
    retryable: bool | None = None     # None = default for the kind

    packages: list[str] = Field(default_factory=list)      # apt, venv_packages
    package: str = ""                                      # pipx / snap install spec
    provides: str = ""                                     # installed name, if not `package`
    classic: bool = False                                  # snap --classic
    command: list[str] = Field(default_factory=list)       # command, user_command
    env: dict[str, str] = Field(default_factory=dict)
    extra_path: list[str] = Field(default_factory=list)    # prepended to PATH
    repo: str = ""                                         # source
    install_dir: str = ""                                  # source: keep checkout here
    build: list[list[str]] = Field(default_factory=list)   # source: run inside checkout
    path: str = ""                                         # file / wrapper name
    content: str = ""                                      # file, wrapper, profile_block
    mode: int = 0o644
    owner: Literal["user", "root"] = "user"
    overwrite: bool = False
    links: list[str] = Field(default_factory=list)         # pipx_links
    paths: list[str] = Field(default_factory=list)         # chown
    shell: str = ""                                        # login_shell
    alternatives: list[StepSpec] = Field(default_factory=list)

    creates: str = ""                                      # satisfied if path exists
    binary: str = ""                                       # satisfied if on PATH

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("step name must not be empty")
        return value.strip()

    @model_validator(mode="after")
    def _check_required(self) -> StepSpec:
        for field_name in _REQUIRED_FIELDS.get(self.kind, ()):
            if not getattr(self, field_name):
                raise ValueError(f"step '{self.name}' ({self.kind}) requires '{field_name}'")
        if self.kind == "first_success":
            for alt in self.alternatives:
                if alt.kind == "first_success":
                    raise ValueError(f"step '{self.name}': alternatives cannot nest")
        return self

    @property
    def is_retryable(self) -> bool:
        if self.retryable is not None:
            return self.retryable
        return self.kind in _RETRYABLE_KINDS

    @property
    def installed_name(self) -> str:
        return self.provides or self.package

    @property
    def step_names(self) -> list[str]:
        """Names of the Steps this declaration expands to."""
        if self.kind == "venv_packages":
            return [f"{self.name}:{distribution_name(r)}" for r in self.packages]
        return [self.name]


class VerifySpec(BaseModel):
    """A capability to probe after the run. Exactly one probe field is set."""

    capability: str
    group: str = "tools"
    optional: bool = False

    binary: str = ""        # resolvable on PATH
    module: str = ""        # importable by the shared venv interpreter
    path: str = ""          # exists on disk (tokens expanded)
    apt: str = ""           # dpkg reports installed
    pipx: str = ""          # listed by the user's pipx

    @model_validator(mode="after")
    def _one_probe(self) -> VerifySpec:
        probes = [f for f in ("binary", "module", "path", "apt", "pipx") if getattr(self, f)]
        if len(probes) != 1:
            raise ValueError(
                f"verification '{self.capability}' needs exactly one of "
                "binary, module, path, apt, pipx"
            )
        return self

    @property
    def probe_kind(self) -> str:
        for f in ("binary", "module", "path", "apt", "pipx"):
            if getattr(self, f):
                return f
        return ""


class Profile(BaseModel):
    """Root provisioning profile."""

    version: int = 1
    name: str
    description: str = ""

    settings: Settings = Field(default_factory=Settings)
    steps: list[StepSpec] = Field(default_factory=list)
    verify: list[VerifySpec] = Field(default_factory=list)
    follow_up: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_step_names(self) -> Profile:
        seen: set[str] = set()
        for spec in self.steps:
            for name in spec.step_names:
                if name in seen:
                    raise ValueError(f"duplicate step name: '{name}'")
                seen.add(name)
        return self

    def get_step(self, name: str) -> StepSpec | None:
        """Look up a step declaration by name."""
        for spec in self.steps:
            if spec.name == name:
                return spec
        return None
