"""Sub-task checklist handling for step executions.

The tracker only manipulates the in-memory aggregate; the transition engine
loads, mutates and saves instances around it so that every change is written
atomically with its history record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from claim_workflows.core.models import SubTask
from claim_workflows.core.types import SubTaskStatus
from claim_workflows.exceptions import DuplicateSubTaskError, IllegalTransitionError, SubTaskNotFoundError

if TYPE_CHECKING:
    from datetime import datetime

    from claim_workflows.core.definition import StepDefinition
    from claim_workflows.core.models import StepExecution

__all__ = ["SubTaskTracker"]


class SubTaskTracker:
    """Manages the checklist attached to a step execution and gates its completion."""

    def open_required(self, execution: StepExecution, step: StepDefinition) -> list[SubTask]:
        """Create the required sub-tasks of a freshly opened execution.

        Keys are added in sorted order so the checklist is stable across runs.
        """
        created = []
        for key in sorted(step.required_sub_tasks):
            if execution.get_sub_task(key) is None:
                created.append(self.add_sub_task(execution, key, _label_for(key), required=True))
        return created

    def add_sub_task(
        self,
        execution: StepExecution,
        key: str,
        label: str,
        *,
        required: bool = False,
        sort_order: int | None = None,
    ) -> SubTask:
        """Attach a new sub-task to an open execution.

        Args:
            execution: The execution to extend.
            key: Sub-task key, unique within the execution.
            label: Display label.
            required: Whether the sub-task gates the step. Sub-tasks added after
                the step opened are informational unless the step requires them.
            sort_order: Checklist position; defaults to after the last item.

        Raises:
            IllegalTransitionError: If the execution is already closed.
            DuplicateSubTaskError: If the key is already present.
        """
        if not execution.is_open:
            raise IllegalTransitionError(execution.step_key, execution.step_key, "step execution is closed")
        if execution.get_sub_task(key) is not None:
            raise DuplicateSubTaskError(execution.id, key)

        if sort_order is None:
            sort_order = max((sub_task.sort_order for sub_task in execution.sub_tasks), default=-1) + 1

        sub_task = SubTask(key=key, label=label, required=required, sort_order=sort_order)
        execution.sub_tasks.append(sub_task)
        execution.sub_tasks.sort(key=lambda item: item.sort_order)
        return sub_task

    def complete_sub_task(
        self,
        execution: StepExecution,
        key: str,
        actor_id: str,
        now: datetime,
    ) -> tuple[SubTask, bool]:
        """Mark a sub-task as done.

        Completing an already done sub-task is a no-op.

        Returns:
            The sub-task and whether this call changed it.

        Raises:
            SubTaskNotFoundError: If the execution has no sub-task with this key.
            IllegalTransitionError: If a pending sub-task is completed on a closed execution.
        """
        sub_task = execution.get_sub_task(key)
        if sub_task is None:
            raise SubTaskNotFoundError(execution.id, key)
        if sub_task.is_done:
            return sub_task, False
        if not execution.is_open:
            raise IllegalTransitionError(execution.step_key, execution.step_key, "step execution is closed")

        sub_task.status = SubTaskStatus.DONE
        sub_task.completed_by = actor_id
        sub_task.completed_at = now
        return sub_task, True

    def list_sub_tasks(self, execution: StepExecution) -> list[SubTask]:
        return sorted(execution.sub_tasks, key=lambda item: item.sort_order)

    def pending_required(self, execution: StepExecution, step: StepDefinition) -> list[str]:
        """Return required sub-task keys that are not done yet.

        A key required by the definition but missing from the execution counts
        as pending.
        """
        pending = []
        for key in sorted(step.required_sub_tasks):
            sub_task = execution.get_sub_task(key)
            if sub_task is None or not sub_task.is_done:
                pending.append(key)
        return pending

    def active_sub_task(self, execution: StepExecution) -> SubTask | None:
        """Return the first pending sub-task in checklist order."""
        for sub_task in self.list_sub_tasks(execution):
            if not sub_task.is_done:
                return sub_task
        return None


def _label_for(key: str) -> str:
    return key.replace("-", " ").replace("_", " ").capitalize()
