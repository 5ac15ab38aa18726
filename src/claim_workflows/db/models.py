"""SQLAlchemy models for claim workflow persistence.

This module defines the database models for persisting workflow state:
- WorkflowTemplateModel: Published template versions as JSON
- WorkflowInstanceModel: One row per claim workflow, carrying the lock version
- StepExecutionModel: Each time a claim entered a step
- SubTaskModel: Checklist items of a step execution
- TransitionRecordModel: Append-only history
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claim_workflows.core.types import ExecutionStatus, InstanceStatus, SubTaskStatus, WorkStatus

__all__ = [
    "StepExecutionModel",
    "SubTaskModel",
    "TransitionRecordModel",
    "WorkflowInstanceModel",
    "WorkflowTemplateModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")

# Enum columns store member names, so an active row holds 'ACTIVE'
_ACTIVE_ONLY = text("status = 'ACTIVE'")


class WorkflowTemplateModel(UUIDAuditBase):
    """Persisted template version.

    Attributes:
        template_id: Template identifier shared by all versions.
        version: Template version, unique per template id.
        name: Display name.
        description: Human-readable description.
        definition_json: Output of ``template_to_dict``.
    """

    __tablename__ = "claim_workflow_templates"
    __table_args__ = (Index("ix_claim_workflow_templates_id_version", "template_id", "version", unique=True),)

    template_id: Mapped[str] = mapped_column(String(255), index=True)
    version: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    definition_json: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)


class WorkflowInstanceModel(UUIDAuditBase):
    """Persisted workflow instance of a claim.

    Attributes:
        claim_id: The claim that owns the instance.
        template_id: Template the instance runs on.
        template_version: Template version, frozen at creation.
        current_step_key: Key of the open step, or the last step once finished.
        status: Instance status.
        scope_id: Shop or branch used to scope role lookups.
        started_at: When the instance was created.
        completed_at: When the instance completed or was cancelled.
        data: Free-form claim attributes.
        lock_version: Optimistic concurrency counter.
        history_length: Number of history records written.
    """

    __tablename__ = "claim_workflow_instances"
    __table_args__ = (
        Index("ix_claim_workflow_instances_claim_id", "claim_id"),
        Index("ix_claim_workflow_instances_status", "status"),
        Index("ix_claim_workflow_instances_scope_id", "scope_id"),
        Index(
            "uq_claim_workflow_instances_active_claim",
            "claim_id",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    claim_id: Mapped[str] = mapped_column(String(255))
    template_id: Mapped[str] = mapped_column(String(255))
    template_version: Mapped[int] = mapped_column(Integer)
    current_step_key: Mapped[str] = mapped_column(String(255))
    status: Mapped[InstanceStatus] = mapped_column(
        Enum(InstanceStatus, native_enum=False, length=50),
        default=InstanceStatus.ACTIVE,
    )
    scope_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    lock_version: Mapped[int] = mapped_column(Integer, default=1)
    history_length: Mapped[int] = mapped_column(Integer, default=0)

    # Relationships
    step_executions: Mapped[list[StepExecutionModel]] = relationship(
        back_populates="instance",
        lazy="selectin",
        order_by="StepExecutionModel.sequence",
        cascade="all, delete-orphan",
    )


class StepExecutionModel(UUIDAuditBase):
    """One occurrence of a claim being in a step.

    Attributes:
        instance_id: Foreign key to the workflow instance.
        step_key: Key of the step definition.
        sequence: Position within the instance, starting at 1.
        status: Execution status.
        opened_at: When the step was entered.
        closed_at: When the step was left.
        assignee_id: Assigned user, if any.
        eligible_assignees: Users eligible when the step opened.
        sla_deadline: When the step breaches its SLA.
        sla_warning_at: When an SLA warning becomes due.
        sla_breached: Whether the SLA was breached.
        sla_warned: Whether a warning was raised.
        work_status: Progress reported by the assignee.
    """

    __tablename__ = "claim_workflow_step_executions"
    __table_args__ = (
        Index("ix_claim_step_executions_instance_id", "instance_id"),
        Index("ix_claim_step_executions_assignee_id", "assignee_id"),
        Index("ix_claim_step_executions_status", "status"),
    )

    instance_id: Mapped[UUID] = mapped_column(
        ForeignKey("claim_workflow_instances.id", ondelete="CASCADE"),
    )
    step_key: Mapped[str] = mapped_column(String(255))
    sequence: Mapped[int] = mapped_column(Integer)
    status: Mapped[ExecutionStatus] = mapped_column(
        Enum(ExecutionStatus, native_enum=False, length=50),
        default=ExecutionStatus.OPEN,
    )
    opened_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    assignee_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    eligible_assignees: Mapped[list[str]] = mapped_column(JSONType, default=list)
    sla_deadline: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    sla_warning_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    sla_breached: Mapped[bool] = mapped_column(default=False)
    sla_warned: Mapped[bool] = mapped_column(default=False)
    work_status: Mapped[WorkStatus] = mapped_column(
        Enum(WorkStatus, native_enum=False, length=50),
        default=WorkStatus.NOT_STARTED,
    )

    # Relationships
    instance: Mapped[WorkflowInstanceModel] = relationship(back_populates="step_executions")
    sub_tasks: Mapped[list[SubTaskModel]] = relationship(
        back_populates="execution",
        lazy="selectin",
        order_by="SubTaskModel.sort_order",
        cascade="all, delete-orphan",
    )


class SubTaskModel(UUIDAuditBase):
    """Checklist item of a step execution.

    Attributes:
        execution_id: Foreign key to the step execution.
        key: Sub-task key, unique within the execution.
        label: Display label.
        status: Pending or done.
        required: Whether the sub-task gates the step.
        sort_order: Checklist position.
        completed_by: Who completed it.
        completed_at: When it was completed.
    """

    __tablename__ = "claim_workflow_sub_tasks"
    __table_args__ = (Index("ix_claim_sub_tasks_execution_key", "execution_id", "key", unique=True),)

    execution_id: Mapped[UUID] = mapped_column(
        ForeignKey("claim_workflow_step_executions.id", ondelete="CASCADE"),
    )
    key: Mapped[str] = mapped_column(String(255))
    label: Mapped[str] = mapped_column(String(500))
    status: Mapped[SubTaskStatus] = mapped_column(
        Enum(SubTaskStatus, native_enum=False, length=50),
        default=SubTaskStatus.PENDING,
    )
    required: Mapped[bool] = mapped_column(default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    completed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    # Relationships
    execution: Mapped[StepExecutionModel] = relationship(back_populates="sub_tasks")


class TransitionRecordModel(UUIDAuditBase):
    """Append-only history entry.

    Rows are only ever inserted.

    Attributes:
        instance_id: Foreign key to the workflow instance.
        sequence: Position in the instance's history, starting at 1.
        from_step_key: Step before the change.
        to_step_key: Step after the change, None when the instance finished.
        actor_id: Who caused the change.
        occurred_at: When the change happened.
        reason: Why the record was written.
        details: Extra context.
    """

    __tablename__ = "claim_workflow_transition_records"
    __table_args__ = (
        Index("ix_claim_transition_records_instance_sequence", "instance_id", "sequence", unique=True),
        Index("ix_claim_transition_records_reason", "reason"),
    )

    instance_id: Mapped[UUID] = mapped_column(
        ForeignKey("claim_workflow_instances.id", ondelete="CASCADE"),
    )
    sequence: Mapped[int] = mapped_column(Integer)
    from_step_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    to_step_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_id: Mapped[str] = mapped_column(String(255))
    occurred_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    reason: Mapped[str] = mapped_column(String(255))
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
