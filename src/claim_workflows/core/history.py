"""Append-only history of workflow instances.

Every transition, assignment change, status change and SLA marker produces a
:class:`TransitionRecord`. Records are written by the store in the same atomic
unit as the instance change they describe and are never edited or deleted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any
from uuid import UUID

from claim_workflows.core.types import HistoryReason

__all__ = ["HistoryLog", "TransitionRecord"]

# Records that mark something about the current step without moving the claim
MARKER_REASONS = frozenset(
    {
        HistoryReason.FORCE_REASSIGN,
        HistoryReason.SLA_WARNING,
        HistoryReason.SLA_BREACH,
        HistoryReason.SUB_TASK_COMPLETED,
        HistoryReason.STEP_STATUS_CHANGED,
        HistoryReason.STEP_ASSIGNMENT_PLANNED,
    }
)


@dataclass(frozen=True)
class TransitionRecord:
    """Immutable history entry.

    Attributes:
        instance_id: Instance the record belongs to.
        sequence: Position in the instance's history, starting at 1.
        from_step_key: Step the claim was in, None for the initial entry.
        to_step_key: Step the claim moved to, None when the instance finished.
        actor_id: Who caused the change.
        timestamp: When the change happened.
        reason: Why the record was written, e.g. "manual-advance" or "sla-breach".
        details: Extra read-only context such as previous and new assignee.
    """

    instance_id: UUID
    sequence: int
    from_step_key: str | None
    to_step_key: str | None
    actor_id: str
    timestamp: datetime
    reason: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @property
    def is_marker(self) -> bool:
        """Whether the record leaves the current step unchanged."""
        return self.reason in MARKER_REASONS


class HistoryLog:
    """Helpers for building and reading an instance's history."""

    def __init__(self, instance_id: UUID, next_sequence: int = 1) -> None:
        self.instance_id = instance_id
        self._next_sequence = next_sequence
        self.pending: list[TransitionRecord] = []

    def append(
        self,
        *,
        from_step_key: str | None,
        to_step_key: str | None,
        actor_id: str,
        timestamp: datetime,
        reason: str,
        details: Mapping[str, Any] | None = None,
    ) -> TransitionRecord:
        """Stage a new record to be written with the next instance save."""
        record = TransitionRecord(
            instance_id=self.instance_id,
            sequence=self._next_sequence,
            from_step_key=from_step_key,
            to_step_key=to_step_key,
            actor_id=actor_id,
            timestamp=timestamp,
            reason=reason,
            details=details or {},
        )
        self._next_sequence += 1
        self.pending.append(record)
        return record

    @property
    def last_sequence(self) -> int:
        return self._next_sequence - 1

    @staticmethod
    def ordered(records: Iterable[TransitionRecord]) -> list[TransitionRecord]:
        return sorted(records, key=lambda record: (record.timestamp, record.sequence))

    @classmethod
    def replay(cls, records: Iterable[TransitionRecord]) -> list[str]:
        """Reconstruct the sequence of current-step keys an instance went through.

        Marker records and terminal records (``to_step_key`` is None) do not
        move the claim and are skipped.

        Example:
            >>> HistoryLog.replay(engine_history)
            ['intake', 'diagnosis', 'quotation']
        """
        return [
            record.to_step_key
            for record in cls.ordered(records)
            if not record.is_marker and record.to_step_key is not None
        ]

    @classmethod
    def for_reason(cls, records: Iterable[TransitionRecord], reason: str) -> list[TransitionRecord]:
        return [record for record in cls.ordered(records) if record.reason == reason]
