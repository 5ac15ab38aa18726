"""Tests for the exception hierarchy and its HTTP mapping."""

from __future__ import annotations

from uuid import uuid4

import pytest

from claim_workflows.core.types import InstanceStatus
from claim_workflows.exceptions import (
    ConcurrentModificationError,
    DuplicateSubTaskError,
    IllegalTransitionError,
    InstanceAlreadyActiveError,
    InstanceNotActiveError,
    InstanceNotFoundError,
    InvalidTemplateError,
    NoOpenStepError,
    NotAuthorizedError,
    NotFoundError,
    NotificationDeliveryError,
    RequestRejectedError,
    StepExecutionNotFoundError,
    StepNotFoundError,
    SubTaskNotFoundError,
    SubTasksIncompleteError,
    TemplateNotFoundError,
    WorkflowsError,
)
from claim_workflows.web.exceptions import error_code_for, status_code_for, workflow_exception_handler


@pytest.mark.unit
class TestHierarchy:
    """Tests for how the exceptions relate to each other."""

    @pytest.mark.parametrize(
        "exc_type",
        [
            TemplateNotFoundError,
            StepNotFoundError,
            InstanceNotFoundError,
            StepExecutionNotFoundError,
            SubTaskNotFoundError,
        ],
    )
    def test_not_found_errors(self, exc_type: type[Exception]) -> None:
        """Test every lookup failure shares the NotFoundError base."""
        assert issubclass(exc_type, NotFoundError)
        assert issubclass(exc_type, WorkflowsError)

    @pytest.mark.parametrize(
        "exc_type",
        [
            IllegalTransitionError,
            SubTasksIncompleteError,
            NotAuthorizedError,
            InstanceNotActiveError,
            InstanceAlreadyActiveError,
            DuplicateSubTaskError,
        ],
    )
    def test_rejected_requests(self, exc_type: type[Exception]) -> None:
        """Test request rejections share the RequestRejectedError base."""
        assert issubclass(exc_type, RequestRejectedError)

    def test_conflicts_are_not_rejections(self) -> None:
        """Test a version conflict is distinguishable from a rejected request."""
        assert not issubclass(ConcurrentModificationError, RequestRejectedError)
        assert not issubclass(NoOpenStepError, RequestRejectedError)
        assert not issubclass(NotificationDeliveryError, RequestRejectedError)


@pytest.mark.unit
class TestMessages:
    """Tests for exception attributes and messages."""

    def test_template_not_found(self) -> None:
        assert str(TemplateNotFoundError("warranty-repair")) == "Workflow template 'warranty-repair' not found"
        error = TemplateNotFoundError("warranty-repair", 3)
        assert error.version == 3
        assert "version 3" in str(error)

    def test_illegal_transition(self) -> None:
        error = IllegalTransitionError("intake", "closed", "allowed targets are diagnosis")

        assert (error.from_step, error.to_step) == ("intake", "closed")
        assert str(error) == "Illegal transition from 'intake' to 'closed': allowed targets are diagnosis"

    def test_illegal_completion(self) -> None:
        assert "'intake' to '<end>'" in str(IllegalTransitionError("intake", None))

    def test_pending_keys_sorted(self) -> None:
        error = SubTasksIncompleteError("intake", {"serial-checked", "photos-uploaded"})

        assert error.pending_keys == ["photos-uploaded", "serial-checked"]
        assert "photos-uploaded, serial-checked" in str(error)

    def test_concurrent_modification(self) -> None:
        instance_id = uuid4()

        assert str(ConcurrentModificationError(instance_id, 4)).endswith("(expected version 4)")
        assert str(ConcurrentModificationError(instance_id, 4, 5)).endswith("(expected version 4, found 5)")

    def test_instance_not_active(self) -> None:
        error = InstanceNotActiveError("abc", InstanceStatus.CANCELLED)

        assert str(error) == "Workflow instance 'abc' is cancelled"

    def test_step_not_found(self) -> None:
        error = StepNotFoundError("warranty-repair", 2, "nope")

        assert (error.template_id, error.version, error.step_key) == ("warranty-repair", 2, "nope")
        assert str(error) == "Step 'nope' is not part of workflow template 'warranty-repair' version 2"

    def test_notification_delivery(self) -> None:
        error = NotificationDeliveryError("abc", "escalation", RuntimeError("smtp down"))

        assert error.kind == "escalation"
        assert str(error) == "Could not deliver escalation notification for workflow instance 'abc': smtp down"

    def test_invalid_template(self) -> None:
        error = InvalidTemplateError(["a", "b"])

        assert error.errors == ["a", "b"]
        assert str(error).endswith("a; b")


@pytest.mark.unit
class TestHttpMapping:
    """Tests for the Litestar exception handler."""

    @pytest.mark.parametrize(
        ("exc", "status_code", "code"),
        [
            (InstanceNotFoundError("x"), 404, "instance_not_found"),
            (SubTaskNotFoundError("x", "k"), 404, "sub_task_not_found"),
            (StepNotFoundError("warranty-repair", 1, "nope"), 404, "step_not_found"),
            (NotificationDeliveryError("x", "escalation", RuntimeError("smtp down")), 502, "notification_delivery"),
            (ConcurrentModificationError("x", 1, 2), 409, "concurrent_modification"),
            (InstanceAlreadyActiveError("CLM-1", "x"), 409, "instance_already_active"),
            (NotAuthorizedError("tech-1", "advance"), 403, "not_authorized"),
            (InvalidTemplateError(["bad"]), 422, "invalid_template"),
            (IllegalTransitionError("a", "b"), 400, "illegal_transition"),
            (DuplicateSubTaskError("x", "k"), 400, "duplicate_sub_task"),
            (NoOpenStepError("x"), 500, "no_open_step"),
        ],
    )
    def test_status_and_code(self, exc: WorkflowsError, status_code: int, code: str) -> None:
        assert status_code_for(exc) == status_code
        assert error_code_for(exc) == code

    def test_response_body(self) -> None:
        exc = SubTasksIncompleteError("intake", ["photos-uploaded"])
        response = workflow_exception_handler(None, exc)  # type: ignore[arg-type]

        assert response.status_code == 400
        assert response.content == {
            "error": "sub_tasks_incomplete",
            "message": "Step 'intake' has pending required sub-tasks: photos-uploaded",
            "pending_keys": ["photos-uploaded"],
        }

    def test_version_fields(self) -> None:
        response = workflow_exception_handler(None, ConcurrentModificationError("x", 1, 3))  # type: ignore[arg-type]

        assert response.content["expected_version"] == 1
        assert response.content["actual_version"] == 3

    def test_validation_errors(self) -> None:
        response = workflow_exception_handler(None, InvalidTemplateError(["no steps"]))  # type: ignore[arg-type]

        assert response.status_code == 422
        assert response.content["errors"] == ["no steps"]

    def test_broken_invariant_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("ERROR", logger="claim_workflows.web.exceptions"):
            response = workflow_exception_handler(None, NoOpenStepError("x"))  # type: ignore[arg-type]

        assert response.status_code == 500
        assert "has no open step" in caplog.text

    def test_delivery_failure_is_not_an_invariant(self, caplog: pytest.LogCaptureFixture) -> None:
        exc = NotificationDeliveryError("abc", "escalation", RuntimeError("smtp down"))
        with caplog.at_level("ERROR", logger="claim_workflows.web.exceptions"):
            response = workflow_exception_handler(None, exc)  # type: ignore[arg-type]

        assert response.status_code == 502
        assert response.content["instance_id"] == "abc"
        assert "invariant" not in caplog.text
