"""Tests for sub-task checklist handling."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from claim_workflows.core.definition import StepDefinition
from claim_workflows.core.models import StepExecution
from claim_workflows.core.types import ExecutionStatus, SubTaskStatus
from claim_workflows.engine.subtasks import SubTaskTracker
from claim_workflows.exceptions import (
    DuplicateSubTaskError,
    IllegalTransitionError,
    RequestRejectedError,
    SubTaskNotFoundError,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def tracker() -> SubTaskTracker:
    return SubTaskTracker()


@pytest.fixture
def inspection() -> StepDefinition:
    return StepDefinition(
        key="inspection",
        required_role="inspector",
        required_sub_tasks=frozenset({"serial-checked", "photos-uploaded"}),
    )


@pytest.fixture
def execution() -> StepExecution:
    return StepExecution(id=uuid4(), step_key="inspection", sequence=1, opened_at=NOW)


@pytest.mark.unit
class TestSubTaskTracker:
    """Tests for SubTaskTracker."""

    def test_open_required_in_sorted_order(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        created = tracker.open_required(execution, inspection)

        assert [sub_task.key for sub_task in created] == ["photos-uploaded", "serial-checked"]
        assert all(sub_task.required for sub_task in created)
        assert created[0].label == "Photos uploaded"
        assert [sub_task.sort_order for sub_task in execution.sub_tasks] == [0, 1]

    def test_pending_required(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        tracker.open_required(execution, inspection)
        tracker.complete_sub_task(execution, "photos-uploaded", "inspector-1", NOW)

        assert tracker.pending_required(execution, inspection) == ["serial-checked"]

    def test_required_key_missing_from_execution_counts_as_pending(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        assert tracker.pending_required(execution, inspection) == ["photos-uploaded", "serial-checked"]

    def test_complete_records_actor_and_time(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        tracker.open_required(execution, inspection)
        sub_task, changed = tracker.complete_sub_task(execution, "serial-checked", "inspector-1", NOW)

        assert changed
        assert sub_task.status == SubTaskStatus.DONE
        assert sub_task.completed_by == "inspector-1"
        assert sub_task.completed_at == NOW

    def test_complete_is_idempotent(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        tracker.open_required(execution, inspection)
        tracker.complete_sub_task(execution, "serial-checked", "inspector-1", NOW)
        sub_task, changed = tracker.complete_sub_task(execution, "serial-checked", "inspector-2", NOW)

        assert not changed
        assert sub_task.completed_by == "inspector-1"

    def test_complete_unknown_key(self, tracker: SubTaskTracker, execution: StepExecution) -> None:
        with pytest.raises(SubTaskNotFoundError, match="'ghost'"):
            tracker.complete_sub_task(execution, "ghost", "inspector-1", NOW)

    def test_complete_on_closed_execution(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        tracker.open_required(execution, inspection)
        execution.status = ExecutionStatus.COMPLETED

        with pytest.raises(IllegalTransitionError, match="closed"):
            tracker.complete_sub_task(execution, "serial-checked", "inspector-1", NOW)

    def test_add_informational_sub_task(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        tracker.open_required(execution, inspection)
        extra = tracker.add_sub_task(execution, "customer-called", "Call the customer")

        assert not extra.required
        assert extra.sort_order == 2
        tracker.complete_sub_task(execution, "customer-called", "inspector-1", NOW)
        assert tracker.pending_required(execution, inspection) == ["photos-uploaded", "serial-checked"]

    def test_add_duplicate_key(self, tracker: SubTaskTracker, execution: StepExecution) -> None:
        tracker.add_sub_task(execution, "customer-called", "Call the customer")

        with pytest.raises(DuplicateSubTaskError) as exc_info:
            tracker.add_sub_task(execution, "customer-called", "Again")
        assert isinstance(exc_info.value, RequestRejectedError)

    def test_add_to_closed_execution(self, tracker: SubTaskTracker, execution: StepExecution) -> None:
        execution.status = ExecutionStatus.SKIPPED

        with pytest.raises(IllegalTransitionError):
            tracker.add_sub_task(execution, "customer-called", "Call the customer")

    def test_explicit_sort_order(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        tracker.open_required(execution, inspection)
        tracker.add_sub_task(execution, "first", "Do this first", sort_order=-1)

        assert [sub_task.key for sub_task in tracker.list_sub_tasks(execution)][0] == "first"

    def test_active_sub_task(
        self,
        tracker: SubTaskTracker,
        inspection: StepDefinition,
        execution: StepExecution,
    ) -> None:
        tracker.open_required(execution, inspection)
        assert tracker.active_sub_task(execution).key == "photos-uploaded"

        tracker.complete_sub_task(execution, "photos-uploaded", "inspector-1", NOW)
        assert tracker.active_sub_task(execution).key == "serial-checked"

        tracker.complete_sub_task(execution, "serial-checked", "inspector-1", NOW)
        assert tracker.active_sub_task(execution) is None
