"""Core domain module for claim-workflows.

This module exports the fundamental building blocks of the engine: types,
template definitions, runtime models, history records, notification events and
the capability protocols.
"""

from __future__ import annotations

from claim_workflows.core.definition import StepDefinition, WorkflowTemplate, template_from_dict, template_to_dict
from claim_workflows.core.events import WorkflowNotification
from claim_workflows.core.history import HistoryLog, TransitionRecord
from claim_workflows.core.models import ClaimContext, StepExecution, SubTask, WorkflowInstance
from claim_workflows.core.protocols import NotificationDispatcher, UserDirectory, WorkflowStore
from claim_workflows.core.types import (
    ClaimData,
    ExecutionStatus,
    HistoryReason,
    InstanceStatus,
    NotificationKind,
    SubTaskStatus,
    WorkStatus,
)

__all__ = [
    "ClaimContext",
    "ClaimData",
    "ExecutionStatus",
    "HistoryLog",
    "HistoryReason",
    "InstanceStatus",
    "NotificationDispatcher",
    "NotificationKind",
    "StepDefinition",
    "StepExecution",
    "SubTask",
    "SubTaskStatus",
    "TransitionRecord",
    "UserDirectory",
    "WorkStatus",
    "WorkflowInstance",
    "WorkflowNotification",
    "WorkflowStore",
    "WorkflowTemplate",
    "template_from_dict",
    "template_to_dict",
]
