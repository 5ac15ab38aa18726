"""Database persistence layer for claim-workflows.

This module provides SQLAlchemy models, repositories and a ``WorkflowStore``
implementation for persisting templates, instances and their history.

Requires the [db] extra:
    pip install claim-workflows[db]
"""

from __future__ import annotations

from claim_workflows.db.models import (
    StepExecutionModel,
    SubTaskModel,
    TransitionRecordModel,
    WorkflowInstanceModel,
    WorkflowTemplateModel,
)
from claim_workflows.db.repositories import (
    StepExecutionRepository,
    TransitionRecordRepository,
    WorkflowInstanceRepository,
    WorkflowTemplateRepository,
)
from claim_workflows.db.store import SQLAlchemyWorkflowStore

__all__ = [
    "SQLAlchemyWorkflowStore",
    "StepExecutionModel",
    "StepExecutionRepository",
    "SubTaskModel",
    "TransitionRecordModel",
    "TransitionRecordRepository",
    "WorkflowInstanceModel",
    "WorkflowInstanceRepository",
    "WorkflowTemplateModel",
    "WorkflowTemplateRepository",
]
