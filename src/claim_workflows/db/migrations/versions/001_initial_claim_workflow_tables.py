"""Initial claim workflow tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create claim workflow tables."""
    op.create_table(
        "claim_workflow_templates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("template_id", sa.String(length=255), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("definition_json", sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_claim_workflow_templates_template_id", "claim_workflow_templates", ["template_id"])
    op.create_index(
        "ix_claim_workflow_templates_id_version",
        "claim_workflow_templates",
        ["template_id", "version"],
        unique=True,
    )

    op.create_table(
        "claim_workflow_instances",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("claim_id", sa.String(length=255), nullable=False),
        sa.Column("template_id", sa.String(length=255), nullable=False),
        sa.Column("template_version", sa.Integer(), nullable=False),
        sa.Column("current_step_key", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("scope_id", sa.String(length=255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("history_length", sa.Integer(), nullable=False, server_default="0"),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_claim_workflow_instances_claim_id", "claim_workflow_instances", ["claim_id"])
    op.create_index("ix_claim_workflow_instances_status", "claim_workflow_instances", ["status"])
    op.create_index("ix_claim_workflow_instances_scope_id", "claim_workflow_instances", ["scope_id"])
    op.create_index(
        "uq_claim_workflow_instances_active_claim",
        "claim_workflow_instances",
        ["claim_id"],
        unique=True,
        sqlite_where=sa.text("status = 'ACTIVE'"),
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        "claim_workflow_step_executions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("instance_id", sa.Uuid(), nullable=False),
        sa.Column("step_key", sa.String(length=255), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assignee_id", sa.String(length=255), nullable=True),
        sa.Column("eligible_assignees", sa.JSON(), nullable=False),
        sa.Column("sla_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sla_warning_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sla_breached", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sla_warned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("work_status", sa.String(length=50), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["instance_id"], ["claim_workflow_instances.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_claim_step_executions_instance_id", "claim_workflow_step_executions", ["instance_id"])
    op.create_index("ix_claim_step_executions_assignee_id", "claim_workflow_step_executions", ["assignee_id"])
    op.create_index("ix_claim_step_executions_status", "claim_workflow_step_executions", ["status"])

    op.create_table(
        "claim_workflow_sub_tasks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("execution_id", sa.Uuid(), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("label", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_by", sa.String(length=255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["execution_id"], ["claim_workflow_step_executions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_claim_sub_tasks_execution_key",
        "claim_workflow_sub_tasks",
        ["execution_id", "key"],
        unique=True,
    )

    op.create_table(
        "claim_workflow_transition_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("instance_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("from_step_key", sa.String(length=255), nullable=True),
        sa.Column("to_step_key", sa.String(length=255), nullable=True),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["instance_id"], ["claim_workflow_instances.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_claim_transition_records_instance_sequence",
        "claim_workflow_transition_records",
        ["instance_id", "sequence"],
        unique=True,
    )
    op.create_index("ix_claim_transition_records_reason", "claim_workflow_transition_records", ["reason"])


def downgrade() -> None:
    """Drop claim workflow tables."""
    op.drop_table("claim_workflow_transition_records")
    op.drop_table("claim_workflow_sub_tasks")
    op.drop_table("claim_workflow_step_executions")
    op.drop_table("claim_workflow_instances")
    op.drop_table("claim_workflow_templates")
