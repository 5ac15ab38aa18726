"""Read-only progress view of a workflow instance."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from claim_workflows.core.types import ExecutionStatus, InstanceStatus, WorkStatus

if TYPE_CHECKING:
    from claim_workflows.core.definition import WorkflowTemplate
    from claim_workflows.core.models import WorkflowInstance

__all__ = ["StepProgress", "WorkflowProgress", "build_progress"]


@dataclass(frozen=True)
class StepProgress:
    """Progress of one template step within an instance.

    Attributes:
        key: Step key.
        name: Display name.
        position: Zero-based position in the template.
        is_completed: Whether the step's latest execution was completed.
        is_current: Whether the claim is in this step right now.
        assignee_id: Assignee of the latest execution.
        work_status: Work status of the latest execution.
        sub_tasks_done: Number of done sub-tasks on the latest execution.
        sub_tasks_total: Number of sub-tasks on the latest execution.
        sla_breached: Whether the latest execution breached its SLA.
        times_entered: How many executions the step has had.
    """

    key: str
    name: str
    position: int
    is_completed: bool
    is_current: bool
    assignee_id: str | None
    work_status: WorkStatus | None
    sub_tasks_done: int
    sub_tasks_total: int
    sla_breached: bool
    times_entered: int


@dataclass(frozen=True)
class WorkflowProgress:
    instance_id: UUID
    claim_id: str
    template_id: str
    template_version: int
    status: InstanceStatus
    current_step_key: str
    steps: tuple[StepProgress, ...]

    @property
    def completed_count(self) -> int:
        return sum(1 for step in self.steps if step.is_completed)

    def to_mermaid(self, template: WorkflowTemplate) -> str:
        current = self.current_step_key if self.status == InstanceStatus.ACTIVE else None
        return template.to_mermaid(
            current_step=current,
            completed_steps=[step.key for step in self.steps if step.is_completed],
        )


def build_progress(template: WorkflowTemplate, instance: WorkflowInstance) -> WorkflowProgress:
    """Summarize an instance against every step of its template, in template order."""
    steps = []
    for position, step in enumerate(template.steps):
        executions = [execution for execution in instance.executions if execution.step_key == step.key]
        latest = executions[-1] if executions else None
        steps.append(
            StepProgress(
                key=step.key,
                name=step.display_name,
                position=position,
                is_completed=latest is not None and latest.status == ExecutionStatus.COMPLETED,
                is_current=latest is not None and latest.is_open,
                assignee_id=latest.assignee_id if latest else None,
                work_status=latest.work_status if latest else None,
                sub_tasks_done=sum(1 for sub_task in latest.sub_tasks if sub_task.is_done) if latest else 0,
                sub_tasks_total=len(latest.sub_tasks) if latest else 0,
                sla_breached=latest.sla_breached if latest else False,
                times_entered=len(executions),
            )
        )
    return WorkflowProgress(
        instance_id=instance.id,
        claim_id=instance.claim_id,
        template_id=instance.template_id,
        template_version=instance.template_version,
        status=instance.status,
        current_step_key=instance.current_step_key,
        steps=tuple(steps),
    )
