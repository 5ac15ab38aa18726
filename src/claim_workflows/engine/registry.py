"""Template registry for publishing and looking up workflow templates.

Templates are stored per id and version. A published version is never
replaced, so instances created from it keep a stable definition.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from claim_workflows.exceptions import InvalidTemplateError, StepNotFoundError, TemplateNotFoundError

if TYPE_CHECKING:
    from claim_workflows.core.definition import StepDefinition, WorkflowTemplate

__all__ = ["TemplateRegistry"]

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """Registry for storing and retrieving workflow templates.

    Attributes:
        _templates: Nested dict mapping template id -> version -> WorkflowTemplate.
    """

    def __init__(self) -> None:
        """Initialize an empty template registry."""
        self._templates: dict[str, dict[int, WorkflowTemplate]] = {}

    def publish(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Validate and publish a template version.

        Publishing the exact same definition twice is a no-op.

        Args:
            template: The template to publish.

        Returns:
            The published template.

        Raises:
            InvalidTemplateError: If the step graph is invalid, or if a
                different definition is already published under the same id
                and version.

        Example:
            >>> registry = TemplateRegistry()
            >>> registry.publish(standard_repair_v1)
        """
        errors = template.validate()
        if errors:
            raise InvalidTemplateError(errors)

        versions = self._templates.setdefault(template.id, {})
        existing = versions.get(template.version)
        if existing is not None:
            if existing == template:
                return existing
            msg = f"Template '{template.id}' version {template.version} is already published; publish a new version"
            raise InvalidTemplateError([msg])

        versions[template.version] = template
        logger.info("Published workflow template %s v%s (%d steps)", template.id, template.version, len(template.steps))
        return template

    def get_template(self, template_id: str, version: int | None = None) -> WorkflowTemplate:
        """Retrieve a template by id and optional version.

        Args:
            template_id: The template id.
            version: The template version. If None, returns the latest version.

        Returns:
            The requested WorkflowTemplate.

        Raises:
            TemplateNotFoundError: If the template id or version is not published.
        """
        versions = self._templates.get(template_id)
        if not versions:
            raise TemplateNotFoundError(template_id, version)

        if version is None:
            version = max(versions)

        if version not in versions:
            raise TemplateNotFoundError(template_id, version)

        return versions[version]

    def resolve_next_steps(self, template: WorkflowTemplate, current_step_key: str) -> frozenset[StepDefinition]:
        """Return the steps that may follow ``current_step_key``.

        An empty set means the step is terminal.

        Raises:
            StepNotFoundError: If ``current_step_key`` is not a step of the template.
        """
        current = template.get_step(current_step_key)
        if current is None:
            raise StepNotFoundError(template.id, template.version, current_step_key)
        return frozenset(step for key in current.allowed_next if (step := template.get_step(key)) is not None)

    def list_templates(self, latest_only: bool = True) -> list[WorkflowTemplate]:
        """List published templates.

        Args:
            latest_only: If True, only return the latest version of each template.

        Returns:
            List of WorkflowTemplate objects.
        """
        templates: list[WorkflowTemplate] = []
        for versions in self._templates.values():
            if latest_only:
                templates.append(versions[max(versions)])
            else:
                templates.extend(versions[version] for version in sorted(versions))
        return templates

    def has_template(self, template_id: str, version: int | None = None) -> bool:
        versions = self._templates.get(template_id)
        if not versions:
            return False
        return version is None or version in versions

    def get_versions(self, template_id: str) -> list[int]:
        """Get all published versions of a template, oldest first.

        Raises:
            TemplateNotFoundError: If the template id is not published.
        """
        if template_id not in self._templates:
            raise TemplateNotFoundError(template_id)
        return sorted(self._templates[template_id])
