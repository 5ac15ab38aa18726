"""Capability interfaces consumed by the engine.

Persistence, the user/role directory and notification delivery live outside
this package. They are described here as ``Protocol`` classes so any object
with the right methods can be plugged in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from claim_workflows.core.events import WorkflowNotification
    from claim_workflows.core.history import TransitionRecord
    from claim_workflows.core.models import WorkflowInstance


__all__ = ["NotificationDispatcher", "UserDirectory", "WorkflowStore"]


@runtime_checkable
class WorkflowStore(Protocol):
    """Persistence interface for workflow instances and their history.

    Implementations must apply an instance write and its history records as a
    single atomic unit, and must reject writes based on a stale version.
    Instances handed out by ``load_*`` methods are private copies: mutating
    them has no effect until they are saved.
    """

    async def load_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        """Load an instance with all of its executions and sub-tasks."""
        ...

    async def find_instance_by_execution(self, execution_id: UUID) -> WorkflowInstance | None:
        """Load the instance that owns a step execution."""
        ...

    async def find_active_instance(self, claim_id: str) -> WorkflowInstance | None:
        """Load the active instance of a claim, if it has one."""
        ...

    async def list_active_instances(self) -> Sequence[WorkflowInstance]:
        """Load every active instance."""
        ...

    async def insert_instance(self, instance: WorkflowInstance, records: Sequence[TransitionRecord]) -> None:
        """Store a new instance together with its initial history.

        Raises:
            InstanceAlreadyActiveError: If the claim already has an active instance.
        """
        ...

    async def save_instance(
        self,
        instance: WorkflowInstance,
        expected_version: int,
        records: Sequence[TransitionRecord],
    ) -> None:
        """Write an instance and append records if the stored version matches.

        On success ``instance.version`` is set to the new stored version.

        Raises:
            ConcurrentModificationError: If the stored version differs from
                ``expected_version``.
        """
        ...

    async def list_history(self, instance_id: UUID) -> Sequence[TransitionRecord]:
        """Return an instance's records ordered by sequence."""
        ...


@runtime_checkable
class UserDirectory(Protocol):
    """User and role lookups owned by the surrounding application."""

    async def users_with_role(self, role: str, scope_id: str | None) -> set[str]:
        """Return ids of active users holding ``role`` within the given scope."""
        ...

    async def has_override_capability(self, user_id: str) -> bool:
        """Whether a user may act on steps they are not assigned to."""
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Delivers workflow events over email, SMS or in-app channels."""

    async def notify(self, event: WorkflowNotification) -> None:
        """Deliver or queue a single event."""
        ...
