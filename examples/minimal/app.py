"""Minimal example of claim-workflows integration.

This example wires the WorkflowPlugin into a Litestar app with a warranty
repair template, a static user directory and a dispatcher that only logs.

Run with:
    cd examples/minimal
    litestar run

Or:
    uvicorn app:app --reload
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from litestar import Controller, Litestar, get, post

from claim_workflows import (
    SLAMonitor,
    StepDefinition,
    TemplateRegistry,
    TransitionEngine,
    WorkflowNotification,
    WorkflowPlugin,
    WorkflowPluginConfig,
    WorkflowTemplate,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Collaborators
# =============================================================================


class StaticDirectory:
    """User directory backed by a fixed role table."""

    def __init__(self, roles: dict[str, set[str]], overrides: set[str]) -> None:
        self.roles = roles
        self.overrides = overrides

    async def users_with_role(self, role: str, scope_id: str | None) -> set[str]:
        return set(self.roles.get(role, set()))

    async def has_override_capability(self, user_id: str) -> bool:
        return user_id in self.overrides


class LoggingDispatcher:
    """Dispatcher that logs events instead of sending email or SMS."""

    def __init__(self) -> None:
        self.sent: list[WorkflowNotification] = []

    async def notify(self, event: WorkflowNotification) -> None:
        self.sent.append(event)
        logger.info("%s for claim %s -> %s", event.kind, event.claim_id, ", ".join(sorted(event.recipients)))


# =============================================================================
# Template
# =============================================================================

WARRANTY_REPAIR = WorkflowTemplate(
    id="warranty-repair",
    name="Warranty repair",
    version=1,
    description="Intake, diagnosis and quotation of a warranty repair claim",
    steps=(
        StepDefinition(
            key="intake",
            required_role="clerk",
            required_sub_tasks=frozenset({"photos-uploaded", "serial-checked"}),
            allowed_next=("diagnosis",),
        ),
        StepDefinition(key="diagnosis", required_role="technician", allowed_next=("quotation",), can_skip=True),
        StepDefinition(
            key="quotation",
            required_role="estimator",
            sla=timedelta(hours=48),
            escalation_role="supervisor",
            allowed_next=("repair", "closed"),
        ),
        StepDefinition(key="repair", required_role="technician", allowed_next=("closed",)),
        StepDefinition(key="closed", name="Closed", required_role="clerk"),
    ),
)

directory = StaticDirectory(
    roles={
        "clerk": {"clerk-1"},
        "technician": {"tech-1"},
        "estimator": {"estimator-1"},
        "supervisor": {"supervisor-1"},
    },
    overrides={"manager-1"},
)
dispatcher = LoggingDispatcher()


# =============================================================================
# API Controller
# =============================================================================


class ClaimWorkflowController(Controller):
    """REST API for claim workflows."""

    path = "/claims"
    tags = ["Claims"]

    @get("/templates")
    async def list_templates(self, template_registry: TemplateRegistry) -> list[dict[str, Any]]:
        """List the latest version of each published template."""
        return [
            {
                "id": template.id,
                "version": template.version,
                "name": template.name,
                "steps": template.step_keys,
                "mermaid": template.to_mermaid(),
            }
            for template in template_registry.list_templates()
        ]

    @post("/{claim_id:str}/workflow")
    async def start_workflow(
        self,
        claim_id: str,
        data: dict[str, Any],
        workflow_engine: TransitionEngine,
    ) -> dict[str, Any]:
        """Start the warranty repair workflow for a claim."""
        instance = await workflow_engine.create_instance(
            claim_id,
            data.get("template_id", WARRANTY_REPAIR.id),
            actor_id=data.get("actor_id"),
            context=data.get("context"),
        )
        return {
            "instance_id": str(instance.id),
            "current_step": instance.current_step_key,
            "execution_id": str(instance.open_execution.id),
        }

    @get("/workflows/{instance_id:uuid}")
    async def get_progress(self, instance_id: UUID, workflow_engine: TransitionEngine) -> dict[str, Any]:
        """Get the progress of a workflow instance."""
        progress = await workflow_engine.get_progress(instance_id)
        return {
            "instance_id": str(progress.instance_id),
            "status": progress.status,
            "current_step": progress.current_step_key,
            "completed": progress.completed_count,
            "steps": [
                {
                    "key": step.key,
                    "assignee": step.assignee_id,
                    "current": step.is_current,
                    "sub_tasks": f"{step.sub_tasks_done}/{step.sub_tasks_total}",
                }
                for step in progress.steps
            ],
        }

    @get("/workflows/{instance_id:uuid}/history")
    async def get_history(self, instance_id: UUID, workflow_engine: TransitionEngine) -> list[dict[str, Any]]:
        """Get the audit trail of a workflow instance."""
        return [
            {
                "sequence": record.sequence,
                "from": record.from_step_key,
                "to": record.to_step_key,
                "actor": record.actor_id,
                "reason": record.reason,
            }
            for record in await workflow_engine.get_history(instance_id)
        ]

    @post("/workflows/{instance_id:uuid}/advance")
    async def advance(
        self,
        instance_id: UUID,
        data: dict[str, Any],
        workflow_engine: TransitionEngine,
    ) -> dict[str, Any]:
        """Move a claim to the next step, or complete it from the last one."""
        instance = await workflow_engine.advance(
            instance_id,
            data["actor_id"],
            data.get("target"),
            expected_version=data.get("expected_version"),
        )
        return {"status": instance.status, "current_step": instance.current_step_key, "version": instance.version}

    @post("/workflows/{instance_id:uuid}/skip")
    async def skip(
        self,
        instance_id: UUID,
        data: dict[str, Any],
        workflow_engine: TransitionEngine,
    ) -> dict[str, Any]:
        """Skip a skippable step without finishing its checklist."""
        instance = await workflow_engine.skip(
            instance_id,
            data["actor_id"],
            data.get("target"),
            expected_version=data.get("expected_version"),
        )
        return {"status": instance.status, "current_step": instance.current_step_key, "version": instance.version}

    @post("/workflows/{instance_id:uuid}/cancel")
    async def cancel(self, instance_id: UUID, data: dict[str, Any], workflow_engine: TransitionEngine) -> None:
        """Cancel a claim workflow."""
        await workflow_engine.cancel(instance_id, data["actor_id"], data.get("reason", ""))

    @post("/executions/{execution_id:uuid}/sub-tasks/{key:str}/complete")
    async def complete_sub_task(
        self,
        execution_id: UUID,
        key: str,
        data: dict[str, Any],
        workflow_engine: TransitionEngine,
    ) -> dict[str, Any]:
        """Tick off a checklist item."""
        sub_task = await workflow_engine.complete_sub_task(execution_id, key, data["actor_id"])
        return {"key": sub_task.key, "status": sub_task.status, "completed_by": sub_task.completed_by}

    @post("/sla/run")
    async def run_sla(self, sla_monitor: SLAMonitor) -> dict[str, int]:
        """Run one SLA sweep; normally triggered by a scheduler."""
        report = await sla_monitor.run()
        return {
            "scanned": report.scanned,
            "warned": len(report.warned),
            "breached": len(report.breached),
            "failed": len(report.failed),
        }


# =============================================================================
# Application
# =============================================================================

# Configure the plugin
plugin_config = WorkflowPluginConfig(
    directory=directory,
    dispatcher=dispatcher,
    templates=[WARRANTY_REPAIR],
)

# Create the Litestar application
app = Litestar(
    route_handlers=[ClaimWorkflowController],
    plugins=[WorkflowPlugin(config=plugin_config)],
    debug=True,
)


# =============================================================================
# Health Check (for testing)
# =============================================================================


@get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Add health check to app
app.register(health_check)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
