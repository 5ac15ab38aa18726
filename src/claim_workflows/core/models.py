"""Runtime data models for claim-workflows.

This module provides the dataclasses that make up the ``WorkflowInstance``
aggregate: the instance itself, its step executions and their sub-tasks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from claim_workflows.core.types import ExecutionStatus, InstanceStatus, SubTaskStatus, WorkStatus

if TYPE_CHECKING:
    from claim_workflows.core.types import ClaimData


__all__ = ["STEP_ASSIGNMENTS_KEY", "ClaimContext", "StepExecution", "SubTask", "WorkflowInstance"]

STEP_ASSIGNMENTS_KEY = "step_assignments"


@dataclass
class SubTask:
    """Checklist item attached to one step execution.

    Attributes:
        key: Identifier of the sub-task, unique within its execution.
        label: Display label.
        status: Pending until someone completes it.
        required: Whether the step's definition requires it before the step can close.
        sort_order: Position in the checklist.
        completed_by: Actor who completed the sub-task.
        completed_at: When the sub-task was completed.
    """

    key: str
    label: str
    status: SubTaskStatus = SubTaskStatus.PENDING
    required: bool = False
    sort_order: int = 0
    completed_by: str | None = None
    completed_at: datetime | None = None

    @property
    def is_done(self) -> bool:
        return self.status == SubTaskStatus.DONE


@dataclass
class StepExecution:
    """One occurrence of a claim being in a given step.

    Re-entering a step on a branch creates a new execution rather than
    reopening an old one.

    Attributes:
        id: Unique identifier for this execution.
        step_key: Key of the step definition being executed.
        sequence: Position of this execution within the instance, starting at 1.
        opened_at: When the step was entered.
        status: Open while the claim is in this step.
        closed_at: When the step was left, None while open.
        assignee_id: User responsible for the step, None while unassigned.
        eligible_assignees: Users holding the required role when the step opened.
        sla_deadline: When the step breaches its SLA, None for no deadline.
        sla_warning_at: When an SLA warning becomes due.
        sla_breached: Set once the deadline has passed; never reset.
        sla_warned: Set once a warning was raised; never reset.
        work_status: Progress reported by the assignee.
        sub_tasks: The step's checklist.
    """

    id: UUID
    step_key: str
    sequence: int
    opened_at: datetime
    status: ExecutionStatus = ExecutionStatus.OPEN
    closed_at: datetime | None = None
    assignee_id: str | None = None
    eligible_assignees: frozenset[str] = field(default_factory=frozenset)
    sla_deadline: datetime | None = None
    sla_warning_at: datetime | None = None
    sla_breached: bool = False
    sla_warned: bool = False
    work_status: WorkStatus = WorkStatus.NOT_STARTED
    sub_tasks: list[SubTask] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status == ExecutionStatus.OPEN

    def get_sub_task(self, key: str) -> SubTask | None:
        for sub_task in self.sub_tasks:
            if sub_task.key == key:
                return sub_task
        return None


@dataclass
class WorkflowInstance:
    """Aggregate holding the workflow state of a single claim.

    Every write to an instance goes through the store with the ``version`` it
    was read at; a stale version is rejected.

    Attributes:
        id: Unique identifier for this workflow instance.
        claim_id: The claim that owns the instance.
        template_id: Id of the template the instance was created from.
        template_version: Template version, frozen at creation.
        current_step_key: Key of the open step, or the last step once finished.
        status: Current instance status.
        created_at: When the instance was created.
        scope_id: Owning unit (shop or branch) used to scope role lookups.
        completed_at: When the instance completed or was cancelled.
        data: Free-form claim attributes.
        version: Optimistic concurrency counter, incremented on every write.
        history_length: Number of history records written for the instance.
        executions: Every step execution in the order it was opened.
    """

    id: UUID
    claim_id: str
    template_id: str
    template_version: int
    current_step_key: str
    status: InstanceStatus
    created_at: datetime
    scope_id: str | None = None
    completed_at: datetime | None = None
    data: ClaimData = field(default_factory=dict)
    version: int = 0
    history_length: int = 0
    executions: list[StepExecution] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == InstanceStatus.ACTIVE

    @property
    def open_execution(self) -> StepExecution | None:
        """Return the currently open step execution, if any."""
        for execution in reversed(self.executions):
            if execution.is_open:
                return execution
        return None

    def get_execution(self, execution_id: UUID) -> StepExecution | None:
        for execution in self.executions:
            if execution.id == execution_id:
                return execution
        return None

    @property
    def context(self) -> ClaimContext:
        return ClaimContext(claim_id=self.claim_id, scope_id=self.scope_id, data=self.data)


@dataclass(frozen=True)
class ClaimContext:
    """What the assignment resolver knows about a claim.

    Attributes:
        claim_id: The claim being routed.
        scope_id: Owning shop or branch; role lookups are limited to it.
        data: Free-form claim attributes. Planned step assignees live under
            the ``"step_assignments"`` key.
    """

    claim_id: str
    scope_id: str | None = None
    data: ClaimData = field(default_factory=dict, compare=False, hash=False)

    @property
    def step_assignments(self) -> dict[str, str]:
        """Assignees planned for this claim ahead of time, keyed by step."""
        return dict(self.data.get(STEP_ASSIGNMENTS_KEY) or {})
