"""Claim Workflows - Step-based workflow engine for warranty and repair claims.

This package routes each claim through a versioned template of steps, assigns
every step to a user holding the required role, gates steps on their sub-task
checklists, watches SLA deadlines and keeps an append-only history of
everything that happened to the claim.

Key Features:
    - Versioned templates with branching successors and per-step SLAs
    - Role-based assignment with manual pick and forced reassignment
    - Required sub-tasks that gate a step
    - SLA warnings and breach escalation
    - Optimistic concurrency on every write
    - In-memory and SQLAlchemy stores, and a Litestar plugin

Example:
    >>> from claim_workflows import StepDefinition, TemplateRegistry, TransitionEngine, WorkflowTemplate
    >>>
    >>> registry = TemplateRegistry()
    >>> registry.publish(
    ...     WorkflowTemplate(
    ...         id="warranty-repair",
    ...         name="Warranty repair",
    ...         version=1,
    ...         steps=(
    ...             StepDefinition(key="intake", required_role="clerk", allowed_next=("repair",)),
    ...             StepDefinition(key="repair", required_role="technician"),
    ...         ),
    ...     )
    ... )
    >>> engine = TransitionEngine(registry, InMemoryWorkflowStore(), directory)
    >>> instance = await engine.create_instance("CLM-1001", "warranty-repair", actor_id="clerk-1")
"""

from __future__ import annotations

from claim_workflows.__metadata__ import __project__, __version__
from claim_workflows.config import EngineConfig
from claim_workflows.core.definition import StepDefinition, WorkflowTemplate
from claim_workflows.core.events import WorkflowNotification
from claim_workflows.core.history import HistoryLog, TransitionRecord
from claim_workflows.core.models import StepExecution, SubTask, WorkflowInstance
from claim_workflows.core.types import (
    ExecutionStatus,
    HistoryReason,
    InstanceStatus,
    NotificationKind,
    SubTaskStatus,
    WorkStatus,
)
from claim_workflows.engine.memory import InMemoryWorkflowStore
from claim_workflows.engine.registry import TemplateRegistry
from claim_workflows.engine.sla import SLAMonitor, SLAReport
from claim_workflows.engine.transition import TransitionEngine
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
from claim_workflows.plugin import WorkflowPlugin, WorkflowPluginConfig

__all__ = (
    "ConcurrentModificationError",
    "DuplicateSubTaskError",
    "EngineConfig",
    "ExecutionStatus",
    "HistoryLog",
    "HistoryReason",
    "IllegalTransitionError",
    "InMemoryWorkflowStore",
    "InstanceAlreadyActiveError",
    "InstanceNotActiveError",
    "InstanceNotFoundError",
    "InstanceStatus",
    "InvalidTemplateError",
    "NoOpenStepError",
    "NotAuthorizedError",
    "NotFoundError",
    "NotificationDeliveryError",
    "NotificationKind",
    "RequestRejectedError",
    "SLAMonitor",
    "SLAReport",
    "StepDefinition",
    "StepExecution",
    "StepExecutionNotFoundError",
    "StepNotFoundError",
    "SubTask",
    "SubTaskNotFoundError",
    "SubTaskStatus",
    "SubTasksIncompleteError",
    "TemplateNotFoundError",
    "TemplateRegistry",
    "TransitionEngine",
    "TransitionRecord",
    "WorkStatus",
    "WorkflowInstance",
    "WorkflowNotification",
    "WorkflowPlugin",
    "WorkflowPluginConfig",
    "WorkflowTemplate",
    "WorkflowsError",
    "__project__",
    "__version__",
)
