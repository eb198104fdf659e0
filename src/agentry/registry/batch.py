"""
Per-item outcomes for batch operations.

Batch operations loop over their items sequentially and record one
outcome per item; a failing item never stops the loop.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import typing as _typing


class Status(str, _enum.Enum):
    """Outcome of one batch item."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@_dataclasses.dataclass
class ItemOutcome:
    """Result of processing one identifier."""

    identifier: str
    status: Status
    message: str = ""

    def to_dict(self) -> dict[str, _typing.Any]:
        return {
            "name": self.identifier,
            "status": self.status.value,
            "message": self.message,
        }


@_dataclasses.dataclass
class BatchResult:
    """Accumulator of item outcomes with a final tally."""

    outcomes: list[ItemOutcome] = _dataclasses.field(default_factory=list)

    def succeeded(self, identifier: str, message: str = "") -> None:
        self.outcomes.append(ItemOutcome(identifier, Status.SUCCEEDED, message))

    def failed(self, identifier: str, message: str) -> None:
        self.outcomes.append(ItemOutcome(identifier, Status.FAILED, message))

    def skipped(self, identifier: str, message: str = "") -> None:
        self.outcomes.append(ItemOutcome(identifier, Status.SKIPPED, message))

    def count(self, status: Status) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    def identifiers(self, status: Status) -> list[str]:
        return [o.identifier for o in self.outcomes if o.status is status]

    @property
    def has_failures(self) -> bool:
        return self.count(Status.FAILED) > 0

    def tally(self) -> dict[str, int]:
        """Counts per status."""
        return {status.value: self.count(status) for status in Status}

    def summary(self) -> str:
        """Human-readable tally line."""
        t = self.tally()
        return (
            f"{t['succeeded']} succeeded, {t['failed']} failed, "
            f"{t['skipped']} skipped"
        )

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "items": [o.to_dict() for o in self.outcomes],
            **self.tally(),
        }
