"""Workflow engine implementations.

This module provides the template registry, the transition engine that drives
instances through their steps, and the collaborators it relies on: assignment
resolution, sub-task tracking, SLA monitoring and an in-memory store.
"""

from __future__ import annotations

from claim_workflows.engine.assignment import AssignmentResolver, AssignmentResult
from claim_workflows.engine.memory import InMemoryWorkflowStore
from claim_workflows.engine.progress import StepProgress, WorkflowProgress, build_progress
from claim_workflows.engine.registry import TemplateRegistry
from claim_workflows.engine.sla import SLAMonitor, SLAReport
from claim_workflows.engine.subtasks import SubTaskTracker
from claim_workflows.engine.transition import TransitionEngine, UnitOfWork

__all__ = [
    "AssignmentResolver",
    "AssignmentResult",
    "InMemoryWorkflowStore",
    "SLAMonitor",
    "SLAReport",
    "StepProgress",
    "SubTaskTracker",
    "TemplateRegistry",
    "TransitionEngine",
    "UnitOfWork",
    "WorkflowProgress",
    "build_progress",
]
