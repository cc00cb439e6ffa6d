"""
Run ledger — append-only provisioning history.

Every install run appends one entry to an NDJSON (newline-delimited
JSON) file: who it ran for, how each step ended in aggregate, and the
verification tally. Entries are never modified or deleted.

Writing the ledger must never break a run, so write() logs and
returns False instead of raising.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from provisioner.core.models.step import RunResult
from provisioner.core.models.verification import VerificationReport

logger = logging.getLogger(__name__)


class RunRecord(BaseModel):
    """A single ledger entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    profile: str = ""
    user: str = ""

    # Steps
    status: str = ""               # ok, partial, aborted, cancelled, error
    steps_total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed_tolerated: int = 0
    failed_fatal: int = 0
    aborted: bool = False
    cancelled: bool = False
    duration_ms: int = 0

    # Verification
    verified_present: int = 0
    verified_missing: int = 0
    missing: list[str] = Field(default_factory=list)

    errors: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_run(
        cls,
        run: RunResult,
        verification: VerificationReport | None = None,
        **kwargs: Any,
    ) -> RunRecord:
        record = cls(
            status=run.status,
            steps_total=run.total,
            succeeded=run.succeeded,
            skipped=run.skipped,
            failed_tolerated=run.tolerated,
            failed_fatal=run.fatal,
            aborted=run.aborted,
            cancelled=run.cancelled,
            **kwargs,
        )
        if verification is not None:
            record.verified_present = verification.present
            record.verified_missing = verification.missing
            record.missing = [i.capability for i in verification.missing_required]
        return record


class RunLedger:
    """Append-only run ledger.

    Each call to write() appends a single JSON line. The file and its
    directory are created if they don't exist.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: RunRecord) -> bool:
        """Append a record. Returns False (and logs) if it could not be written."""
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Failed to write run ledger %s: %s", self._path, e)
            return False
        logger.debug("Ledger entry written: %s for %s", record.status, record.user)
        return True

    def read_all(self) -> list[RunRecord]:
        """All records, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        records = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(RunRecord.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt ledger entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run ledger: %s", e)

        return records

    def read_recent(self, n: int = 20) -> list[RunRecord]:
        return self.read_all()[-n:]

    def entry_count(self) -> int:
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
