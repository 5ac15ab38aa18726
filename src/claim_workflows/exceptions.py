"""Exception hierarchy for claim-workflows."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

__all__ = (
    "ConcurrentModificationError",
    "DuplicateSubTaskError",
    "IllegalTransitionError",
    "InstanceAlreadyActiveError",
    "InstanceNotActiveError",
    "InstanceNotFoundError",
    "InvalidTemplateError",
    "NoOpenStepError",
    "NotAuthorizedError",
    "NotFoundError",
    "NotificationDeliveryError",
    "RequestRejectedError",
    "StepExecutionNotFoundError",
    "StepNotFoundError",
    "SubTaskNotFoundError",
    "SubTasksIncompleteError",
    "TemplateNotFoundError",
    "WorkflowsError",
)


class WorkflowsError(Exception):
    """Base exception for all claim-workflows errors.

    All exceptions raised by the engine inherit from this class, so callers can
    catch every workflow-related error with a single except clause.
    """


class NotFoundError(WorkflowsError):
    """Base class for lookups of templates, instances, executions or sub-tasks that do not exist."""


class TemplateNotFoundError(NotFoundError):
    """Raised when a workflow template is not published.

    Attributes:
        template_id: The id of the template that was not found.
        version: The specific version requested, if any.
    """

    def __init__(self, template_id: str, version: int | None = None) -> None:
        """Initialize the exception with template details.

        Args:
            template_id: The id of the template that was not found.
            version: The specific version requested, if any.
        """
        self.template_id = template_id
        self.version = version
        msg = f"Workflow template '{template_id}'"
        if version is not None:
            msg += f" version {version}"
        msg += " not found"
        super().__init__(msg)


class InstanceNotFoundError(NotFoundError):
    """Raised when a workflow instance does not exist in the store.

    Attributes:
        instance_id: The ID of the workflow instance that was not found.
    """

    def __init__(self, instance_id: str | UUID) -> None:
        self.instance_id = instance_id
        super().__init__(f"Workflow instance '{instance_id}' not found")


class StepNotFoundError(NotFoundError):
    """Raised when a step key is not part of a template version.

    Attributes:
        template_id: The template that was searched.
        version: The template version that was searched.
        step_key: The step key that was not found.
    """

    def __init__(self, template_id: str, version: int, step_key: str) -> None:
        self.template_id = template_id
        self.version = version
        self.step_key = step_key
        super().__init__(f"Step '{step_key}' is not part of workflow template '{template_id}' version {version}")


class StepExecutionNotFoundError(NotFoundError):
    """Raised when a step execution id does not belong to any stored instance.

    Attributes:
        execution_id: The ID of the step execution that was not found.
    """

    def __init__(self, execution_id: str | UUID) -> None:
        self.execution_id = execution_id
        super().__init__(f"Step execution '{execution_id}' not found")


class SubTaskNotFoundError(NotFoundError):
    """Raised when a sub-task key is not present on a step execution.

    Attributes:
        execution_id: The step execution that was searched.
        key: The sub-task key that was not found.
    """

    def __init__(self, execution_id: str | UUID, key: str) -> None:
        self.execution_id = execution_id
        self.key = key
        super().__init__(f"Sub-task '{key}' not found on step execution '{execution_id}'")


class InvalidTemplateError(WorkflowsError):
    """Raised when a template fails validation at publish time.

    A template that raises this error is never stored, so no instance can
    ever reference it.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Workflow template validation failed: {'; '.join(errors)}")


class RequestRejectedError(WorkflowsError):
    """Base class for errors that reject an actor's request.

    The instance is left unchanged and retrying the same request will fail
    the same way.
    """


class IllegalTransitionError(RequestRejectedError):
    """Raised when a transition is not allowed by the template graph.

    Attributes:
        from_step: The step being transitioned from.
        to_step: The requested target step, ``None`` for termination.
    """

    def __init__(self, from_step: str, to_step: str | None, reason: str | None = None) -> None:
        """Initialize the exception with transition details.

        Args:
            from_step: The step being transitioned from.
            to_step: The step being transitioned to.
            reason: Additional context about why the transition is invalid.
        """
        self.from_step = from_step
        self.to_step = to_step
        target = "<end>" if to_step is None else to_step
        msg = f"Illegal transition from '{from_step}' to '{target}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SubTasksIncompleteError(RequestRejectedError):
    """Raised when advancing a step whose required sub-tasks are still pending.

    Attributes:
        step_key: The step that cannot be closed.
        pending_keys: Required sub-task keys that are not done yet.
    """

    def __init__(self, step_key: str, pending_keys: Iterable[str]) -> None:
        self.step_key = step_key
        self.pending_keys = sorted(pending_keys)
        super().__init__(f"Step '{step_key}' has pending required sub-tasks: {', '.join(self.pending_keys)}")


class NotAuthorizedError(RequestRejectedError):
    """Raised when an actor is neither the assignee nor holds override capability.

    Attributes:
        actor_id: The actor that attempted the operation.
        operation: Name of the rejected operation.
    """

    def __init__(self, actor_id: str, operation: str) -> None:
        self.actor_id = actor_id
        self.operation = operation
        super().__init__(f"Actor '{actor_id}' is not authorized to {operation}")


class InstanceNotActiveError(RequestRejectedError):
    """Raised when operating on a completed or cancelled instance.

    Attributes:
        instance_id: The ID of the workflow instance.
        status: The current terminal status of the instance.
    """

    def __init__(self, instance_id: str | UUID, status: str) -> None:
        self.instance_id = instance_id
        self.status = status
        super().__init__(f"Workflow instance '{instance_id}' is {status}")


class InstanceAlreadyActiveError(RequestRejectedError):
    """Raised when a claim already owns an active workflow instance.

    Attributes:
        claim_id: The claim that already has an active instance.
        instance_id: The existing active instance.
    """

    def __init__(self, claim_id: str, instance_id: str | UUID) -> None:
        self.claim_id = claim_id
        self.instance_id = instance_id
        super().__init__(f"Claim '{claim_id}' already has active workflow instance '{instance_id}'")


class DuplicateSubTaskError(RequestRejectedError):
    """Raised when adding a sub-task whose key already exists on the execution."""

    def __init__(self, execution_id: str | UUID, key: str) -> None:
        self.execution_id = execution_id
        self.key = key
        super().__init__(f"Sub-task '{key}' already exists on step execution '{execution_id}'")


class ConcurrentModificationError(WorkflowsError):
    """Raised when a write is based on a stale instance version.

    This is transient: the caller should re-read the instance and retry.

    Attributes:
        instance_id: The ID of the contended instance.
        expected_version: The version the write was based on.
        actual_version: The version found in the store, if known.
    """

    def __init__(
        self,
        instance_id: str | UUID,
        expected_version: int,
        actual_version: int | None = None,
    ) -> None:
        self.instance_id = instance_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = f"Workflow instance '{instance_id}' was modified concurrently (expected version {expected_version}"
        if actual_version is not None:
            msg += f", found {actual_version}"
        msg += ")"
        super().__init__(msg)


class NoOpenStepError(WorkflowsError):
    """Raised when an active instance has no open step execution.

    This indicates broken persisted state rather than a bad request.
    """

    def __init__(self, instance_id: str | UUID) -> None:
        self.instance_id = instance_id
        super().__init__(f"Active workflow instance '{instance_id}' has no open step")


class NotificationDeliveryError(WorkflowsError):
    """Raised when the dispatcher fails to deliver a notification.

    The state change that produced the notification is already committed;
    only delivery failed.

    Attributes:
        instance_id: The instance the notification was about.
        kind: The kind of notification that was not delivered.
    """

    def __init__(self, instance_id: str | UUID, kind: str, cause: Exception) -> None:
        self.instance_id = instance_id
        self.kind = kind
        super().__init__(f"Could not deliver {kind} notification for workflow instance '{instance_id}': {cause}")
