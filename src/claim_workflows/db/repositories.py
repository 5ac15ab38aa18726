"""Repository implementations for claim workflow persistence.

This module provides async repositories for the workflow models using
advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from advanced_alchemy.filters import LimitOffset, OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, func, select

from claim_workflows.core.definition import template_from_dict, template_to_dict
from claim_workflows.core.types import ExecutionStatus, InstanceStatus
from claim_workflows.db.models import (
    StepExecutionModel,
    TransitionRecordModel,
    WorkflowInstanceModel,
    WorkflowTemplateModel,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from claim_workflows.core.definition import WorkflowTemplate
    from claim_workflows.engine.registry import TemplateRegistry

__all__ = [
    "StepExecutionRepository",
    "TransitionRecordRepository",
    "WorkflowInstanceRepository",
    "WorkflowTemplateRepository",
]


class WorkflowTemplateRepository(SQLAlchemyAsyncRepository[WorkflowTemplateModel]):
    """Repository for published template versions.

    Templates are stored as JSON and are never updated in place; a changed
    workflow is saved under a new version.
    """

    model_type = WorkflowTemplateModel

    async def save_template(self, template: WorkflowTemplate) -> WorkflowTemplateModel:
        """Store a template version unless it is already stored.

        Args:
            template: The template to persist.

        Returns:
            The stored row.
        """
        existing = await self.get_one_or_none(template_id=template.id, version=template.version)
        if existing is not None:
            return existing

        model = WorkflowTemplateModel(
            template_id=template.id,
            version=template.version,
            name=template.name,
            description=template.description or None,
            definition_json=template_to_dict(template),
        )
        return await self.add(model)

    async def get_template(self, template_id: str, version: int | None = None) -> WorkflowTemplate | None:
        """Load a template version, or the latest one when ``version`` is None."""
        conditions = [WorkflowTemplateModel.template_id == template_id]
        if version is not None:
            conditions.append(WorkflowTemplateModel.version == version)

        stmt = (
            select(WorkflowTemplateModel)
            .where(and_(*conditions))
            .order_by(WorkflowTemplateModel.version.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return template_from_dict(model.definition_json) if model is not None else None

    async def load_into(self, registry: TemplateRegistry) -> int:
        """Publish every stored template version into a registry.

        Returns:
            Number of versions published.
        """
        stmt = select(WorkflowTemplateModel).order_by(
            WorkflowTemplateModel.template_id,
            WorkflowTemplateModel.version,
        )
        result = await self.session.execute(stmt)
        models = result.scalars().all()
        for model in models:
            registry.publish(template_from_dict(model.definition_json))
        return len(models)


class WorkflowInstanceRepository(SQLAlchemyAsyncRepository[WorkflowInstanceModel]):
    """Repository for workflow instance queries."""

    model_type = WorkflowInstanceModel

    async def find_active_by_claim(self, claim_id: str) -> WorkflowInstanceModel | None:
        return await self.get_one_or_none(claim_id=claim_id, status=InstanceStatus.ACTIVE)

    async def find_by_claim(self, claim_id: str) -> Sequence[WorkflowInstanceModel]:
        """List every instance a claim has had, newest first."""
        stmt = (
            select(WorkflowInstanceModel)
            .where(WorkflowInstanceModel.claim_id == claim_id)
            .order_by(WorkflowInstanceModel.started_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_by_scope(
        self,
        scope_id: str,
        status: InstanceStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[WorkflowInstanceModel], int]:
        """Find instances of a shop or branch.

        Args:
            scope_id: The scope to filter by.
            status: Optional status filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (instances, total_count).
        """
        conditions = [WorkflowInstanceModel.scope_id == scope_id]
        if status:
            conditions.append(WorkflowInstanceModel.status == status)

        return await self.list_and_count(
            *conditions,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="started_at", sort_order="desc"),
        )

    async def list_active(self) -> Sequence[WorkflowInstanceModel]:
        stmt = (
            select(WorkflowInstanceModel)
            .where(WorkflowInstanceModel.status == InstanceStatus.ACTIVE)
            .order_by(WorkflowInstanceModel.started_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_lock_version(self, instance_id: UUID) -> int | None:
        stmt = select(WorkflowInstanceModel.lock_version).where(WorkflowInstanceModel.id == instance_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class StepExecutionRepository(SQLAlchemyAsyncRepository[StepExecutionModel]):
    """Repository for step execution queries, such as a user's work queue."""

    model_type = StepExecutionModel

    async def find_open_by_assignee(self, assignee_id: str) -> Sequence[StepExecutionModel]:
        """List open executions assigned to a user, oldest first."""
        stmt = (
            select(StepExecutionModel)
            .where(
                and_(
                    StepExecutionModel.assignee_id == assignee_id,
                    StepExecutionModel.status == ExecutionStatus.OPEN,
                )
            )
            .order_by(StepExecutionModel.opened_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_unassigned(self) -> Sequence[StepExecutionModel]:
        """List open executions waiting for a manual pick."""
        stmt = (
            select(StepExecutionModel)
            .where(
                and_(
                    StepExecutionModel.assignee_id.is_(None),
                    StepExecutionModel.status == ExecutionStatus.OPEN,
                )
            )
            .order_by(StepExecutionModel.opened_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_overdue(self, now: datetime) -> Sequence[StepExecutionModel]:
        """List open executions whose SLA deadline has passed."""
        stmt = (
            select(StepExecutionModel)
            .where(
                and_(
                    StepExecutionModel.status == ExecutionStatus.OPEN,
                    StepExecutionModel.sla_deadline.is_not(None),
                    StepExecutionModel.sla_deadline < now,
                )
            )
            .order_by(StepExecutionModel.sla_deadline)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class TransitionRecordRepository(SQLAlchemyAsyncRepository[TransitionRecordModel]):
    """Repository for history records. Records are only ever added."""

    model_type = TransitionRecordModel

    async def list_for_instance(self, instance_id: UUID) -> Sequence[TransitionRecordModel]:
        stmt = (
            select(TransitionRecordModel)
            .where(TransitionRecordModel.instance_id == instance_id)
            .order_by(TransitionRecordModel.sequence)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_reason(self, instance_id: UUID) -> dict[str, int]:
        """Count an instance's records per reason."""
        stmt = (
            select(TransitionRecordModel.reason, func.count())
            .where(TransitionRecordModel.instance_id == instance_id)
            .group_by(TransitionRecordModel.reason)
        )
        result = await self.session.execute(stmt)
        return {reason: count for reason, count in result.all()}
