"""
Verification models — post-run capability probes.

A VerificationItem re-derives system state on its own. It is
deliberately independent of step outcomes: a step may report success
while its capability is still missing, and the report must show that.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

Probe = Callable[[], bool]


class VerificationStatus(StrEnum):
    PRESENT = "present"
    MISSING = "missing"


@dataclass(frozen=True)
class VerificationItem:
    """A capability and the probe that checks it.

    ``status`` is None until the verifier has run the probe.
    """

    capability: str
    probe: Probe
    group: str = "tools"
    optional: bool = False
    status: VerificationStatus | None = None
    detail: str = ""

    @property
    def present(self) -> bool:
        return self.status == VerificationStatus.PRESENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "capability": self.capability,
            "group": self.group,
            "optional": self.optional,
            "status": self.status.value if self.status else None,
            "detail": self.detail,
        }


@dataclass
class VerificationReport:
    """Evaluated verification items, in input order."""

    items: list[VerificationItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def present(self) -> int:
        return sum(1 for i in self.items if i.present)

    @property
    def missing(self) -> int:
        return self.total - self.present

    @property
    def missing_required(self) -> list[VerificationItem]:
        """Missing capabilities that were expected (VerificationMiss)."""
        return [i for i in self.items if not i.present and not i.optional]

    @property
    def groups(self) -> dict[str, list[VerificationItem]]:
        grouped: dict[str, list[VerificationItem]] = {}
        for item in self.items:
            grouped.setdefault(item.group, []).append(item)
        return grouped

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "present": self.present,
            "missing": self.missing,
            "items": [i.to_dict() for i in self.items],
        }
