"""Workflow template and step definitions.

This module provides the immutable data structures for configuring a claim
workflow: the ordered steps, their role requirements, SLA budgets, required
sub-tasks and allowed successors.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

__all__ = ["StepDefinition", "WorkflowTemplate", "template_from_dict", "template_to_dict"]


@dataclass(frozen=True)
class StepDefinition:
    """A single configured stage of a claim workflow.

    Attributes:
        key: Identifier of the step, unique within its template.
        required_role: Role a user must hold to be assigned this step.
        sla: Maximum time the step may stay open, ``None`` for no deadline.
        required_sub_tasks: Sub-task keys that must be done before the step can close.
        allowed_next: Keys of the steps this one may lead to. Empty marks a terminal step.
        name: Human-readable name of the step.
        description: Longer description of the work done in this step.
        sla_warning: How long before the deadline a warning is raised. ``None`` uses
            the engine's default ratio of the SLA.
        escalation_role: Role whose holders are notified on SLA warnings and breaches.
        can_skip: Whether the step may be skipped without completing its required sub-tasks.
        auto_assign_to: User assigned whenever the step opens, ahead of the role lookup.

    Example:
        >>> quotation = StepDefinition(
        ...     key="quotation",
        ...     required_role="service-advisor",
        ...     sla=timedelta(hours=48),
        ...     allowed_next=("approved", "rejected"),
        ... )
    """

    key: str
    required_role: str
    sla: timedelta | None = None
    required_sub_tasks: frozenset[str] = field(default_factory=frozenset)
    allowed_next: tuple[str, ...] = ()
    name: str = ""
    description: str = ""
    sla_warning: timedelta | None = None
    escalation_role: str | None = None
    can_skip: bool = False
    auto_assign_to: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Whether closing this step completes the instance."""
        return not self.allowed_next

    @property
    def display_name(self) -> str:
        return self.name or self.key.replace("-", " ").replace("_", " ").title()


@dataclass(frozen=True)
class WorkflowTemplate:
    """Versioned, immutable definition of a claim workflow.

    The first step in ``steps`` is the initial step opened when an instance is
    created. Step positions are significant and never change once a version
    is published; edits are published as a new version.

    Attributes:
        id: Identifier of the template, shared by all of its versions.
        name: Human-readable name.
        version: Monotonically increasing version number.
        steps: Ordered step definitions.
        description: Human-readable description of the workflow's purpose.

    Example:
        >>> template = WorkflowTemplate(
        ...     id="standard-repair",
        ...     name="Standard Repair",
        ...     version=1,
        ...     steps=(
        ...         StepDefinition(key="intake", required_role="clerk", allowed_next=("repair",)),
        ...         StepDefinition(key="repair", required_role="technician"),
        ...     ),
        ... )
    """

    id: str
    name: str
    version: int
    steps: tuple[StepDefinition, ...]
    description: str = ""

    @property
    def initial_step(self) -> StepDefinition:
        return self.steps[0]

    @property
    def step_keys(self) -> list[str]:
        return [step.key for step in self.steps]

    def get_step(self, key: str) -> StepDefinition | None:
        """Look up a step definition by key.

        Args:
            key: The step key.

        Returns:
            The matching step definition, or None if the template has no such step.
        """
        for step in self.steps:
            if step.key == key:
                return step
        return None

    def position_of(self, key: str) -> int:
        """Return the zero-based position of a step, or -1 if absent."""
        for index, step in enumerate(self.steps):
            if step.key == key:
                return index
        return -1

    def validate(self) -> list[str]:
        """Validate the step graph.

        Returns:
            List of validation error messages. Empty list if valid.

        Example:
            >>> errors = template.validate()
            >>> if errors:
            ...     print("Validation errors:", errors)
        """
        errors: list[str] = []

        if not self.id:
            errors.append("Template id must not be empty")
        if self.version < 1:
            errors.append(f"Template version must be positive, got {self.version}")
        if not self.steps:
            errors.append("Template must define at least one step")
            return errors

        seen: set[str] = set()
        for step in self.steps:
            if not step.key:
                errors.append("Step key must not be empty")
            elif step.key in seen:
                errors.append(f"Duplicate step key '{step.key}'")
            seen.add(step.key)

            if not step.required_role:
                errors.append(f"Step '{step.key}' must declare a required role")
            if step.auto_assign_to is not None and not step.auto_assign_to:
                errors.append(f"Step '{step.key}' auto-assign user must not be empty")
            if step.sla is not None and step.sla <= timedelta(0):
                errors.append(f"Step '{step.key}' SLA must be positive")
            if step.sla_warning is not None:
                if step.sla is None:
                    errors.append(f"Step '{step.key}' declares an SLA warning without an SLA")
                elif not timedelta(0) < step.sla_warning < step.sla:
                    errors.append(f"Step '{step.key}' SLA warning must be shorter than its SLA")
            if len(set(step.allowed_next)) != len(step.allowed_next):
                errors.append(f"Step '{step.key}' lists a successor more than once")

        for step in self.steps:
            for target in step.allowed_next:
                if target not in seen:
                    errors.append(f"Step '{step.key}' references unknown successor '{target}'")

        # Every step must be reachable from the initial step
        reachable = {self.initial_step.key}
        frontier = [self.initial_step]
        while frontier:
            current = frontier.pop()
            for target in current.allowed_next:
                target_step = self.get_step(target)
                if target_step is not None and target not in reachable:
                    reachable.add(target)
                    frontier.append(target_step)

        for step in self.steps:
            if step.key and step.key not in reachable:
                errors.append(f"Step '{step.key}' is unreachable from initial step '{self.initial_step.key}'")

        return errors

    def to_mermaid(self, current_step: str | None = None, completed_steps: list[str] | None = None) -> str:
        """Generate a MermaidJS graph of the template, optionally highlighting progress.

        Args:
            current_step: Key of the step the claim is currently in.
            completed_steps: Keys of steps already closed.

        Returns:
            MermaidJS graph definition as a string.

        Example:
            >>> print(template.to_mermaid(current_step="repair", completed_steps=["intake"]))
            graph TD
                intake[START: Intake]
                repair[END: Repair]
                intake --> repair
                style intake fill:#90EE90,stroke:#006400,stroke-width:2px
                style repair fill:#FFD700,stroke:#FFA500,stroke-width:3px
        """
        lines = ["graph TD"]

        for step in self.steps:
            prefix = ""
            if step.key == self.initial_step.key:
                prefix = "START: "
            elif step.is_terminal:
                prefix = "END: "
            shape_start, shape_end = ("{", "}") if len(step.allowed_next) > 1 else ("[", "]")
            lines.append(f"    {_node_id(step.key)}{shape_start}{prefix}{step.display_name}{shape_end}")

        for step in self.steps:
            for target in step.allowed_next:
                lines.append(f"    {_node_id(step.key)} --> {_node_id(target)}")

        for key in completed_steps or []:
            lines.append(f"    style {_node_id(key)} fill:#90EE90,stroke:#006400,stroke-width:2px")
        if current_step:
            lines.append(f"    style {_node_id(current_step)} fill:#FFD700,stroke:#FFA500,stroke-width:3px")

        return "\n".join(lines)


def _node_id(key: str) -> str:
    # Mermaid node ids cannot contain dashes
    return key.replace("-", "_")


def _seconds(value: timedelta | None) -> float | None:
    return None if value is None else value.total_seconds()


def _duration(value: float | None) -> timedelta | None:
    return None if value is None else timedelta(seconds=value)


def template_to_dict(template: WorkflowTemplate) -> dict[str, Any]:
    """Serialize a template to a JSON-compatible dict.

    Durations are stored as seconds.
    """
    return {
        "id": template.id,
        "name": template.name,
        "version": template.version,
        "description": template.description,
        "steps": [
            {
                "key": step.key,
                "name": step.name,
                "description": step.description,
                "required_role": step.required_role,
                "sla_seconds": _seconds(step.sla),
                "sla_warning_seconds": _seconds(step.sla_warning),
                "required_sub_tasks": sorted(step.required_sub_tasks),
                "allowed_next": list(step.allowed_next),
                "escalation_role": step.escalation_role,
                "can_skip": step.can_skip,
                "auto_assign_to": step.auto_assign_to,
            }
            for step in template.steps
        ],
    }


def template_from_dict(data: Mapping[str, Any]) -> WorkflowTemplate:
    """Rebuild a template from the output of :func:`template_to_dict`."""
    return WorkflowTemplate(
        id=data["id"],
        name=data["name"],
        version=int(data["version"]),
        description=data.get("description", ""),
        steps=tuple(
            StepDefinition(
                key=step["key"],
                name=step.get("name", ""),
                description=step.get("description", ""),
                required_role=step["required_role"],
                sla=_duration(step.get("sla_seconds")),
                sla_warning=_duration(step.get("sla_warning_seconds")),
                required_sub_tasks=frozenset(step.get("required_sub_tasks", ())),
                allowed_next=tuple(step.get("allowed_next", ())),
                escalation_role=step.get("escalation_role"),
                can_skip=bool(step.get("can_skip", False)),
                auto_assign_to=step.get("auto_assign_to"),
            )
            for step in data["steps"]
        ),
    )
