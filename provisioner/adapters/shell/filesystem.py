"""
Filesystem adapter — file writes that never leave a file half-done.

Two write disciplines keep shared files valid even when a step fails
partway:

    - append_block: single append of a delimited block; existing
      content is never rewritten or truncated.
    - write_file: write to a temp file in the same directory, then
      ``os.replace`` it into place.

Ownership is handed to the target user only when running as root.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from provisioner.adapters.base import Adapter
from provisioner.core.models.identity import Identity
from provisioner.core.models.result import ExecResult

logger = logging.getLogger(__name__)


def block_markers(marker: str) -> tuple[str, str]:
    """Begin/end lines that delimit a managed block."""
    return f"# >>> {marker} >>>", f"# <<< {marker} <<<"


class FilesystemAdapter(Adapter):
    """File and directory operations returning ExecResults."""

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    # ── Queries ─────────────────────────────────────────────────

    def exists(self, path: Path) -> bool:
        return path.exists() or path.is_symlink()

    def has_block(self, path: Path, marker: str) -> bool:
        """Whether ``path`` already contains the managed block."""
        begin, _ = block_markers(marker)
        try:
            with path.open("r", encoding="utf-8", errors="replace") as f:
                return any(line.rstrip("\n") == begin for line in f)
        except FileNotFoundError:
            return False

    def file_matches(self, path: Path, content: str) -> bool:
        """Whether ``path`` exists with exactly ``content``."""
        try:
            return path.read_text(encoding="utf-8") == content
        except (FileNotFoundError, UnicodeDecodeError, IsADirectoryError):
            return False

    # ── Writes ──────────────────────────────────────────────────

    def append_block(
        self,
        path: Path,
        marker: str,
        content: str,
        owner: Identity | None = None,
    ) -> ExecResult:
        """Append ``content`` between begin/end markers in one write."""
        begin, end = block_markers(marker)
        try:
            created = not path.exists()
            self._mkdir(path.parent, owner)

            lead = ""
            if not created and path.stat().st_size > 0:
                with path.open("rb") as f:
                    f.seek(-1, os.SEEK_END)
                    if f.read(1) != b"\n":
                        lead = "\n"

            body = content.rstrip("\n")
            block = f"{lead}\n{begin}\n{body}\n{end}\n"
            with path.open("a", encoding="utf-8") as f:
                f.write(block)
                f.flush()
                os.fsync(f.fileno())

            if created:
                self._chown(path, owner)
            logger.debug("Appended block '%s' to %s", marker, path)
            return ExecResult.success(
                command=f"append {path}",
                stdout=f"Appended {len(block)} bytes to {path}",
                metadata={"path": str(path), "marker": marker},
            )
        except OSError as e:
            return ExecResult.failure(command=f"append {path}", error=f"Filesystem error: {e}")

    def write_file(
        self,
        path: Path,
        content: str,
        mode: int = 0o644,
        owner: Identity | None = None,
    ) -> ExecResult:
        """Atomically replace ``path`` with ``content``."""
        tmp_name = ""
        try:
            self._mkdir(path.parent, owner)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, mode)
            self._chown(Path(tmp_name), owner)
            os.replace(tmp_name, path)
            logger.debug("Wrote %s (%d bytes, mode %o)", path, len(content), mode)
            return ExecResult.success(
                command=f"write {path}",
                stdout=f"Written {len(content)} bytes to {path}",
                metadata={"path": str(path), "size": len(content)},
            )
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return ExecResult.failure(command=f"write {path}", error=f"Filesystem error: {e}")

    def symlink(self, target: Path, link: Path) -> ExecResult:
        """Point ``link`` at ``target``, replacing any existing link."""
        try:
            link.parent.mkdir(parents=True, exist_ok=True)
            tmp_link = link.with_name(f".{link.name}.tmp")
            if tmp_link.is_symlink() or tmp_link.exists():
                tmp_link.unlink()
            tmp_link.symlink_to(target)
            os.replace(tmp_link, link)
            return ExecResult.success(command=f"ln -sf {target} {link}")
        except OSError as e:
            return ExecResult.failure(
                command=f"ln -sf {target} {link}", error=f"Filesystem error: {e}"
            )

    def remove_tree(self, path: Path) -> ExecResult:
        """Remove a directory tree (no-op if absent)."""
        try:
            if path.is_symlink() or path.is_file():
                path.unlink()
            elif path.exists():
                shutil.rmtree(path)
            return ExecResult.success(command=f"rm -rf {path}")
        except OSError as e:
            return ExecResult.failure(command=f"rm -rf {path}", error=f"Filesystem error: {e}")

    def chown_tree(self, path: Path, owner: Identity) -> ExecResult:
        """Recursively hand ``path`` to ``owner`` (root only)."""
        if not path.exists():
            return ExecResult.failure(command=f"chown -R {path}", error=f"Not found: {path}")
        if os.geteuid() != 0:
            return ExecResult.success(
                command=f"chown -R {path}", stdout="not root, ownership unchanged"
            )
        try:
            os.chown(path, owner.uid, owner.gid, follow_symlinks=False)
            for root, dirs, files in os.walk(path):
                for entry in [*dirs, *files]:
                    os.chown(os.path.join(root, entry), owner.uid, owner.gid,
                             follow_symlinks=False)
            return ExecResult.success(command=f"chown -R {owner.username} {path}")
        except OSError as e:
            return ExecResult.failure(command=f"chown -R {path}", error=f"Filesystem error: {e}")

    # ── Helpers ─────────────────────────────────────────────────

    def _mkdir(self, directory: Path, owner: Identity | None) -> None:
        """Create ``directory``; new directories inside the owner's home get chowned."""
        missing = []
        current = directory
        while not current.exists():
            missing.append(current)
            current = current.parent
        directory.mkdir(parents=True, exist_ok=True)
        if owner is not None:
            for created in missing:
                if created.is_relative_to(owner.home):
                    self._chown(created, owner)

    def _chown(self, path: Path, owner: Identity | None) -> None:
        if owner is None or os.geteuid() != 0:
            return
        os.chown(path, owner.uid, owner.gid, follow_symlinks=False)
