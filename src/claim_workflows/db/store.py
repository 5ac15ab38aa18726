"""SQLAlchemy implementation of the ``WorkflowStore`` protocol.

Each store call runs in its own session and transaction. Instance writes use
``UPDATE ... WHERE lock_version = :expected`` so a stale writer updates no row
and is rejected; the instance row, its executions, sub-tasks and the new
history records are committed together or not at all.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from claim_workflows.core.history import TransitionRecord
from claim_workflows.core.models import StepExecution, SubTask, WorkflowInstance
from claim_workflows.db.models import (
    StepExecutionModel,
    SubTaskModel,
    TransitionRecordModel,
    WorkflowInstanceModel,
)
from claim_workflows.db.repositories import TransitionRecordRepository, WorkflowInstanceRepository
from claim_workflows.exceptions import ConcurrentModificationError, InstanceAlreadyActiveError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["SQLAlchemyWorkflowStore"]

logger = logging.getLogger(__name__)


class SQLAlchemyWorkflowStore:
    """Durable workflow store backed by SQLAlchemy.

    Attributes:
        session_maker: Factory for the async sessions used by each call.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://localhost/claims")
        >>> store = SQLAlchemyWorkflowStore(async_sessionmaker(engine, expire_on_commit=False))
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def load_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        async with self.session_maker() as session:
            model = await session.get(WorkflowInstanceModel, instance_id)
            return _instance_from_model(model) if model is not None else None

    async def find_instance_by_execution(self, execution_id: UUID) -> WorkflowInstance | None:
        async with self.session_maker() as session:
            stmt = select(StepExecutionModel.instance_id).where(StepExecutionModel.id == execution_id)
            instance_id = (await session.execute(stmt)).scalar_one_or_none()
        if instance_id is None:
            return None
        return await self.load_instance(instance_id)

    async def find_active_instance(self, claim_id: str) -> WorkflowInstance | None:
        async with self.session_maker() as session:
            model = await WorkflowInstanceRepository(session=session).find_active_by_claim(claim_id)
            return _instance_from_model(model) if model is not None else None

    async def list_active_instances(self) -> Sequence[WorkflowInstance]:
        async with self.session_maker() as session:
            models = await WorkflowInstanceRepository(session=session).list_active()
            return [_instance_from_model(model) for model in models]

    async def insert_instance(self, instance: WorkflowInstance, records: Sequence[TransitionRecord]) -> None:
        """Store a new instance with its executions and initial history.

        Raises:
            InstanceAlreadyActiveError: If the claim already has an active instance.
        """
        async with self.session_maker() as session, session.begin():
            existing = await WorkflowInstanceRepository(session=session).find_active_by_claim(instance.claim_id)
            if existing is not None:
                raise InstanceAlreadyActiveError(instance.claim_id, existing.id)

            model = WorkflowInstanceModel(id=instance.id, lock_version=1, **_instance_values(instance))
            for execution in instance.executions:
                row = StepExecutionModel(id=execution.id)
                _sync_execution(row, execution)
                model.step_executions.append(row)
            session.add(model)
            try:
                await session.flush()
            except IntegrityError as e:
                # Lost a race with another insert for the same claim
                raise InstanceAlreadyActiveError(instance.claim_id, instance.id) from e

            session.add_all(_record_to_model(record) for record in records)

        instance.version = 1

    async def save_instance(
        self,
        instance: WorkflowInstance,
        expected_version: int,
        records: Sequence[TransitionRecord],
    ) -> None:
        """Write an instance if its stored lock version matches ``expected_version``.

        Raises:
            ConcurrentModificationError: If another writer got there first.
        """
        new_version = expected_version + 1
        async with self.session_maker() as session, session.begin():
            stmt = (
                update(WorkflowInstanceModel)
                .where(
                    WorkflowInstanceModel.id == instance.id,
                    WorkflowInstanceModel.lock_version == expected_version,
                )
                .values(
                    lock_version=new_version,
                    updated_at=datetime.now(timezone.utc),
                    **_instance_values(instance),
                )
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                actual = await WorkflowInstanceRepository(session=session).get_lock_version(instance.id)
                logger.debug(
                    "Rejected stale write to instance %s: expected version %d, stored %s",
                    instance.id,
                    expected_version,
                    actual,
                )
                raise ConcurrentModificationError(instance.id, expected_version, actual)

            rows_stmt = select(StepExecutionModel).where(StepExecutionModel.instance_id == instance.id)
            rows = {row.id: row for row in (await session.execute(rows_stmt)).scalars().all()}
            for execution in instance.executions:
                row = rows.get(execution.id) or StepExecutionModel(id=execution.id, instance_id=instance.id)
                _sync_execution(row, execution)
                session.add(row)

            session.add_all(_record_to_model(record) for record in records)

        instance.version = new_version

    async def list_history(self, instance_id: UUID) -> Sequence[TransitionRecord]:
        async with self.session_maker() as session:
            models = await TransitionRecordRepository(session=session).list_for_instance(instance_id)
            return [_record_from_model(model) for model in models]


def _instance_values(instance: WorkflowInstance) -> dict[str, Any]:
    return {
        "claim_id": instance.claim_id,
        "template_id": instance.template_id,
        "template_version": instance.template_version,
        "current_step_key": instance.current_step_key,
        "status": instance.status,
        "scope_id": instance.scope_id,
        "started_at": instance.created_at,
        "completed_at": instance.completed_at,
        "data": dict(instance.data),
        "history_length": instance.history_length,
    }


def _sync_execution(row: StepExecutionModel, execution: StepExecution) -> None:
    row.step_key = execution.step_key
    row.sequence = execution.sequence
    row.status = execution.status
    row.opened_at = execution.opened_at
    row.closed_at = execution.closed_at
    row.assignee_id = execution.assignee_id
    row.eligible_assignees = sorted(execution.eligible_assignees)
    row.sla_deadline = execution.sla_deadline
    row.sla_warning_at = execution.sla_warning_at
    row.sla_breached = execution.sla_breached
    row.sla_warned = execution.sla_warned
    row.work_status = execution.work_status

    by_key = {sub_task_row.key: sub_task_row for sub_task_row in row.sub_tasks}
    for sub_task in execution.sub_tasks:
        sub_task_row = by_key.get(sub_task.key)
        if sub_task_row is None:
            sub_task_row = SubTaskModel(key=sub_task.key)
            row.sub_tasks.append(sub_task_row)
        sub_task_row.label = sub_task.label
        sub_task_row.status = sub_task.status
        sub_task_row.required = sub_task.required
        sub_task_row.sort_order = sub_task.sort_order
        sub_task_row.completed_by = sub_task.completed_by
        sub_task_row.completed_at = sub_task.completed_at


def _instance_from_model(model: WorkflowInstanceModel) -> WorkflowInstance:
    return WorkflowInstance(
        id=model.id,
        claim_id=model.claim_id,
        template_id=model.template_id,
        template_version=model.template_version,
        current_step_key=model.current_step_key,
        status=model.status,
        created_at=model.started_at,
        scope_id=model.scope_id,
        completed_at=model.completed_at,
        data=dict(model.data or {}),
        version=model.lock_version,
        history_length=model.history_length,
        executions=[_execution_from_model(row) for row in sorted(model.step_executions, key=lambda r: r.sequence)],
    )


def _execution_from_model(row: StepExecutionModel) -> StepExecution:
    return StepExecution(
        id=row.id,
        step_key=row.step_key,
        sequence=row.sequence,
        opened_at=row.opened_at,
        status=row.status,
        closed_at=row.closed_at,
        assignee_id=row.assignee_id,
        eligible_assignees=frozenset(row.eligible_assignees or ()),
        sla_deadline=row.sla_deadline,
        sla_warning_at=row.sla_warning_at,
        sla_breached=row.sla_breached,
        sla_warned=row.sla_warned,
        work_status=row.work_status,
        sub_tasks=[
            SubTask(
                key=sub_task.key,
                label=sub_task.label,
                status=sub_task.status,
                required=sub_task.required,
                sort_order=sub_task.sort_order,
                completed_by=sub_task.completed_by,
                completed_at=sub_task.completed_at,
            )
            for sub_task in sorted(row.sub_tasks, key=lambda item: item.sort_order)
        ],
    )


def _record_to_model(record: TransitionRecord) -> TransitionRecordModel:
    return TransitionRecordModel(
        instance_id=record.instance_id,
        sequence=record.sequence,
        from_step_key=record.from_step_key,
        to_step_key=record.to_step_key,
        actor_id=record.actor_id,
        occurred_at=record.timestamp,
        reason=str(record.reason),
        details=dict(record.details),
    )


def _record_from_model(model: TransitionRecordModel) -> TransitionRecord:
    return TransitionRecord(
        instance_id=model.instance_id,
        sequence=model.sequence,
        from_step_key=model.from_step_key,
        to_step_key=model.to_step_key,
        actor_id=model.actor_id,
        timestamp=model.occurred_at,
        reason=model.reason,
        details=model.details or {},
    )
