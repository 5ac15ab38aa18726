"""Assignment resolution for step executions.

An assignee planned for the claim wins, then the step's own auto-assign user.
Otherwise the resolver asks the external user directory who holds the step's
required role within the claim's scope and applies the selection policy:

- exactly one eligible user is assigned directly;
- several eligible users leave the step unassigned for a manual pick;
- no eligible user leaves the step unassigned and raises a warning event.

A staffing gap never blocks a transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from claim_workflows.core.definition import StepDefinition
    from claim_workflows.core.models import ClaimContext, StepExecution
    from claim_workflows.core.protocols import UserDirectory

__all__ = ["AssignmentResult", "AssignmentResolver"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentResult:
    """Outcome of resolving an assignee for a step.

    Attributes:
        assignee_id: The assigned user, None when the step stays unassigned.
        eligible: Every user holding the required role in scope.
    """

    assignee_id: str | None
    eligible: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_assigned(self) -> bool:
        return self.assignee_id is not None

    @property
    def needs_manual_pick(self) -> bool:
        return self.assignee_id is None and len(self.eligible) > 1


class AssignmentResolver:
    """Resolves assignees and authorizes actors against the user directory.

    Attributes:
        directory: The external user/role directory.
    """

    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    async def eligible_users(self, step: StepDefinition, context: ClaimContext) -> frozenset[str]:
        """Return the users holding the step's required role within the claim's scope."""
        return frozenset(await self.directory.users_with_role(step.required_role, context.scope_id))

    async def resolve_assignee(self, step: StepDefinition, context: ClaimContext) -> AssignmentResult:
        """Pick an assignee for a step according to the selection policy.

        Args:
            step: The step being opened.
            context: The claim the step belongs to.

        Returns:
            The assignment result. A planned or auto-assign user is assigned
            directly; otherwise ``assignee_id`` is None unless exactly one user
            is eligible.
        """
        planned = context.step_assignments.get(step.key)
        if planned:
            logger.debug("Assigned step %s of claim %s to planned assignee %s", step.key, context.claim_id, planned)
            return AssignmentResult(assignee_id=planned, eligible=frozenset({planned}))
        if step.auto_assign_to:
            logger.debug(
                "Assigned step %s of claim %s to auto-assign user %s",
                step.key,
                context.claim_id,
                step.auto_assign_to,
            )
            return AssignmentResult(assignee_id=step.auto_assign_to, eligible=frozenset({step.auto_assign_to}))

        eligible = await self.eligible_users(step, context)

        if len(eligible) == 1:
            (assignee_id,) = eligible
            logger.debug("Assigned step %s of claim %s to %s", step.key, context.claim_id, assignee_id)
            return AssignmentResult(assignee_id=assignee_id, eligible=eligible)

        if not eligible:
            logger.warning(
                "No eligible assignee for step %s of claim %s: nobody holds role %r in scope %r",
                step.key,
                context.claim_id,
                step.required_role,
                context.scope_id,
            )
        else:
            logger.info(
                "Step %s of claim %s has %d eligible users; leaving unassigned for manual pick",
                step.key,
                context.claim_id,
                len(eligible),
            )
        return AssignmentResult(assignee_id=None, eligible=eligible)

    async def has_override(self, actor_id: str) -> bool:
        return await self.directory.has_override_capability(actor_id)

    async def is_authorized(self, actor_id: str, execution: StepExecution) -> bool:
        """Whether an actor may act on an execution.

        The assignee is always authorized; anyone else needs override capability.
        """
        if execution.assignee_id is not None and execution.assignee_id == actor_id:
            return True
        return await self.has_override(actor_id)

    async def escalation_recipients(
        self,
        step: StepDefinition,
        execution: StepExecution,
        context: ClaimContext,
    ) -> frozenset[str]:
        """Return who should hear about an SLA warning or breach.

        This is the current assignee plus every holder of the step's escalation role.
        """
        recipients: set[str] = set()
        if execution.assignee_id is not None:
            recipients.add(execution.assignee_id)
        if step.escalation_role:
            recipients.update(await self.directory.users_with_role(step.escalation_role, context.scope_id))
        return frozenset(recipients)
