"""In-memory workflow store.

This store keeps instances and history in process memory. It is suitable for
development, testing and single-process deployments; use
:class:`claim_workflows.db.SQLAlchemyWorkflowStore` for durable storage.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from claim_workflows.exceptions import ConcurrentModificationError, InstanceAlreadyActiveError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from claim_workflows.core.history import TransitionRecord
    from claim_workflows.core.models import WorkflowInstance

__all__ = ["InMemoryWorkflowStore"]


class InMemoryWorkflowStore:
    """Dictionary-backed implementation of the ``WorkflowStore`` protocol.

    Instances are copied on the way in and out, so callers never share state
    with the store and a stale copy cannot leak into it except through
    :meth:`save_instance`, which checks the version.

    Attributes:
        _instances: Stored instances by id.
        _history: Stored records by instance id.
        _executions: Owning instance id by step execution id.
    """

    def __init__(self) -> None:
        self._instances: dict[UUID, WorkflowInstance] = {}
        self._history: dict[UUID, list[TransitionRecord]] = {}
        self._executions: dict[UUID, UUID] = {}

    async def load_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        instance = self._instances.get(instance_id)
        return copy.deepcopy(instance) if instance is not None else None

    async def find_instance_by_execution(self, execution_id: UUID) -> WorkflowInstance | None:
        instance_id = self._executions.get(execution_id)
        if instance_id is None:
            return None
        return await self.load_instance(instance_id)

    async def find_active_instance(self, claim_id: str) -> WorkflowInstance | None:
        for instance in self._instances.values():
            if instance.claim_id == claim_id and instance.is_active:
                return copy.deepcopy(instance)
        return None

    async def list_active_instances(self) -> Sequence[WorkflowInstance]:
        return [copy.deepcopy(instance) for instance in self._instances.values() if instance.is_active]

    async def insert_instance(self, instance: WorkflowInstance, records: Sequence[TransitionRecord]) -> None:
        # No awaits below: the check and the write happen in one event loop step
        for existing in self._instances.values():
            if existing.claim_id == instance.claim_id and existing.is_active:
                raise InstanceAlreadyActiveError(instance.claim_id, existing.id)

        instance.version = 1
        self._instances[instance.id] = copy.deepcopy(instance)
        self._history[instance.id] = list(records)
        self._index_executions(instance)

    async def save_instance(
        self,
        instance: WorkflowInstance,
        expected_version: int,
        records: Sequence[TransitionRecord],
    ) -> None:
        stored = self._instances.get(instance.id)
        if stored is None or stored.version != expected_version:
            raise ConcurrentModificationError(
                instance.id,
                expected_version=expected_version,
                actual_version=stored.version if stored is not None else None,
            )

        instance.version = expected_version + 1
        self._instances[instance.id] = copy.deepcopy(instance)
        self._history.setdefault(instance.id, []).extend(records)
        self._index_executions(instance)

    async def list_history(self, instance_id: UUID) -> Sequence[TransitionRecord]:
        return sorted(self._history.get(instance_id, []), key=lambda record: record.sequence)

    def _index_executions(self, instance: WorkflowInstance) -> None:
        for execution in instance.executions:
            self._executions[execution.id] = instance.id
