"""Core type definitions for claim-workflows.

This module defines the enums and type aliases shared by the template store,
the transition engine and the persistence layer.
"""

from __future__ import annotations

from enum import StrEnum, auto
from typing import Any, TypeAlias

__all__ = [
    "ClaimData",
    "ExecutionStatus",
    "HistoryReason",
    "InstanceStatus",
    "NotificationKind",
    "SubTaskStatus",
    "WorkStatus",
]


class InstanceStatus(StrEnum):
    """Overall status of a workflow instance.

    Attributes:
        ACTIVE: The claim is moving through its steps.
        COMPLETED: The last step closed with no successor.
        CANCELLED: The instance was cancelled by an actor.
    """

    ACTIVE = auto()
    COMPLETED = auto()
    CANCELLED = auto()


class ExecutionStatus(StrEnum):
    """Status of a single step execution.

    Attributes:
        OPEN: The claim is currently in this step.
        COMPLETED: The step was closed by an advance.
        SKIPPED: The step was skipped or closed by a cancellation.
    """

    OPEN = auto()
    COMPLETED = auto()
    SKIPPED = auto()


class SubTaskStatus(StrEnum):
    """Status of a checklist item attached to a step execution."""

    PENDING = auto()
    DONE = auto()


class WorkStatus(StrEnum):
    """Progress reported by the assignee while a step is open.

    This has no effect on the state machine; it is shown to supervisors and
    recorded in history.
    """

    NOT_STARTED = auto()
    STARTED = auto()
    IN_PROGRESS = auto()
    WAITING_FOR_PARTS = auto()
    WAITING_FOR_APPROVAL = auto()
    ON_HOLD = auto()


class NotificationKind(StrEnum):
    """Kinds of events handed to the notification dispatcher.

    Attributes:
        TRANSITION: A step was entered.
        ESCALATION: An open step breached its SLA.
        UNASSIGNED: A step opened with several eligible users and needs a manual pick.
        NO_ELIGIBLE_ASSIGNEE: A step opened and nobody holds the required role.
        SLA_WARNING: An open step is close to its SLA deadline.
        STEP_READY: All required sub-tasks of the open step are done.
        COMPLETED: The instance reached its terminal step.
        CANCELLED: The instance was cancelled.
    """

    TRANSITION = auto()
    ESCALATION = auto()
    UNASSIGNED = auto()
    NO_ELIGIBLE_ASSIGNEE = auto()
    SLA_WARNING = auto()
    STEP_READY = auto()
    COMPLETED = auto()
    CANCELLED = auto()


class HistoryReason(StrEnum):
    """Reasons written by the engine into transition records.

    Cancellation records carry the free-text reason given by the actor instead.
    """

    INSTANCE_CREATED = "instance-created"
    MANUAL_ADVANCE = "manual-advance"
    STEP_SKIPPED = "step-skipped"
    FORCE_REASSIGN = "force-reassign"
    SLA_WARNING = "sla-warning"
    SLA_BREACH = "sla-breach"
    SUB_TASK_COMPLETED = "sub-task-completed"
    STEP_STATUS_CHANGED = "step-status-changed"
    STEP_ASSIGNMENT_PLANNED = "step-assignment-planned"


ClaimData: TypeAlias = dict[str, Any]
"""Free-form claim attributes carried on an instance for resolvers and notifications."""
