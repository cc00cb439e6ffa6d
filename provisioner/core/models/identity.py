"""
Identity model — the delegating (non-root) user a run provisions for.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, model_validator


class Identity(BaseModel):
    """The target desktop user.

    Resolved once at startup and shared read-only by every step.
    Never the superuser: per-user installs must land in a real
    user's home directory.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    home: Path
    uid: int
    gid: int

    @model_validator(mode="after")
    def _not_superuser(self) -> Identity:
        if self.uid == 0 or self.username == "root":
            raise ValueError("target identity must not be the superuser")
        return self

    def home_path(self, *parts: str) -> Path:
        """Path under the user's home directory."""
        return self.home.joinpath(*parts)

    @property
    def local_bin(self) -> Path:
        """Per-user executable directory (pipx, pip --user)."""
        return self.home / ".local" / "bin"

    def env(self) -> dict[str, str]:
        """Login environment variables for processes run as this user."""
        return {
            "HOME": str(self.home),
            "USER": self.username,
            "LOGNAME": self.username,
        }
