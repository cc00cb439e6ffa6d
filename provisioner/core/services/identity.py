"""
Identity resolution.

Determines the delegating desktop user behind an elevated process.
The privilege-elevation tool records who invoked it (``SUDO_USER``
for sudo, ``DOAS_USER`` for doas, ``PKEXEC_UID`` for pkexec); that
user's passwd entry gives the home directory, uid and gid.

Pure read of process and environment state. No side effects.
"""

from __future__ import annotations

import logging
import os
import pwd
from collections.abc import Callable, Mapping
from pathlib import Path

from provisioner.core.models.identity import Identity

logger = logging.getLogger(__name__)

# Checked in order; the first non-empty one wins
DELEGATING_USER_VARS = ("SUDO_USER", "DOAS_USER")
DELEGATING_UID_VAR = "PKEXEC_UID"


class IdentityError(Exception):
    """No usable non-privileged target user."""


class NotElevated(IdentityError):
    """The process lacks the privilege for system-wide installs."""


class NoTargetUser(IdentityError):
    """No delegating user could be determined (or it is root)."""


def _delegating_entry(
    environ: Mapping[str, str],
    getpwnam: Callable[[str], pwd.struct_passwd],
    getpwuid: Callable[[int], pwd.struct_passwd],
) -> pwd.struct_passwd:
    for var in DELEGATING_USER_VARS:
        name = environ.get(var, "").strip()
        if not name:
            continue
        if name == "root":
            raise NoTargetUser(
                f"{var} is 'root': run with sudo from your desktop user, not from a root shell"
            )
        try:
            return getpwnam(name)
        except KeyError:
            raise NoTargetUser(f"{var} names unknown user '{name}'") from None

    raw_uid = environ.get(DELEGATING_UID_VAR, "").strip()
    if raw_uid:
        try:
            return getpwuid(int(raw_uid))
        except (KeyError, ValueError):
            raise NoTargetUser(f"{DELEGATING_UID_VAR}={raw_uid} is not a known user") from None

    raise NoTargetUser(
        "No delegating user recorded. Run as: sudo provision install"
    )


def resolve(
    environ: Mapping[str, str] | None = None,
    euid: int | None = None,
    *,
    require_elevation: bool = True,
    getpwnam: Callable[[str], pwd.struct_passwd] = pwd.getpwnam,
    getpwuid: Callable[[int], pwd.struct_passwd] = pwd.getpwuid,
) -> Identity:
    """Resolve the target user of this run.

    Args:
        environ: Environment to read (default: ``os.environ``).
        euid: Effective uid (default: ``os.geteuid()``).
        require_elevation: Fail with NotElevated unless running as root.
            When False and not root, the invoking user is the target.

    Raises:
        NotElevated: not root while elevation is required.
        NoTargetUser: root with no distinguishable desktop user.
    """
    environ = os.environ if environ is None else environ
    euid = os.geteuid() if euid is None else euid

    if euid != 0:
        if require_elevation:
            raise NotElevated("This command must be run with sudo: sudo provision install")
        entry = getpwuid(euid)
    else:
        entry = _delegating_entry(environ, getpwnam, getpwuid)

    if entry.pw_uid == 0:
        raise NoTargetUser(f"Delegating user '{entry.pw_name}' is the superuser")

    identity = Identity(
        username=entry.pw_name,
        home=Path(entry.pw_dir),
        uid=entry.pw_uid,
        gid=entry.pw_gid,
    )
    logger.info("Target user: %s (uid=%d, home=%s)", identity.username, identity.uid, identity.home)
    return identity
