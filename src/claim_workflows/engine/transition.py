"""Transition engine for claim workflow instances.

The engine is the only writer of workflow state. Every mutating operation runs
through :meth:`TransitionEngine.atomic_update`, which loads a private copy of the
instance, applies the change, and saves it together with the new history
records under an optimistic version check. Notifications are handed to the
dispatcher only after the store has accepted the write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from uuid import UUID, uuid4

from claim_workflows.config import EngineConfig
from claim_workflows.core.events import WorkflowNotification
from claim_workflows.core.history import HistoryLog
from claim_workflows.core.models import STEP_ASSIGNMENTS_KEY, StepExecution, WorkflowInstance
from claim_workflows.core.types import ExecutionStatus, HistoryReason, InstanceStatus, NotificationKind, WorkStatus
from claim_workflows.engine.assignment import AssignmentResolver
from claim_workflows.engine.progress import build_progress
from claim_workflows.engine.subtasks import SubTaskTracker
from claim_workflows.exceptions import (
    ConcurrentModificationError,
    IllegalTransitionError,
    InstanceAlreadyActiveError,
    InstanceNotActiveError,
    InstanceNotFoundError,
    NoOpenStepError,
    NotAuthorizedError,
    NotificationDeliveryError,
    StepExecutionNotFoundError,
    StepNotFoundError,
    SubTasksIncompleteError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping

    from claim_workflows.core.definition import StepDefinition, WorkflowTemplate
    from claim_workflows.core.history import TransitionRecord
    from claim_workflows.core.models import SubTask
    from claim_workflows.core.protocols import NotificationDispatcher, UserDirectory, WorkflowStore
    from claim_workflows.core.types import ClaimData
    from claim_workflows.engine.progress import WorkflowProgress
    from claim_workflows.engine.registry import TemplateRegistry

__all__ = ["TransitionEngine", "UnitOfWork"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UnitOfWork(Generic[T]):
    """State staged by a single atomic update.

    Attributes:
        instance: Private copy of the instance being changed.
        template: The template version the instance runs on.
        log: History records staged for this write.
        notifications: Events to dispatch once the write is committed.
        changed: Set to False by a mutation that turned out to be a no-op;
            nothing is written and nothing is dispatched.
        result: Value returned to the caller.
    """

    instance: WorkflowInstance
    template: WorkflowTemplate
    log: HistoryLog
    notifications: list[WorkflowNotification] = field(default_factory=list)
    changed: bool = True
    result: T | None = None

    def notify(
        self,
        kind: NotificationKind,
        recipients: Iterable[str],
        timestamp: datetime,
        step_key: str | None = None,
        **details: Any,
    ) -> None:
        self.notifications.append(
            WorkflowNotification(
                kind=kind,
                instance_id=self.instance.id,
                claim_id=self.instance.claim_id,
                step_key=step_key or self.instance.current_step_key,
                recipients=frozenset(recipients),
                timestamp=timestamp,
                details=details,
            )
        )


class TransitionEngine:
    """Drives claim workflow instances through their templates.

    Attributes:
        registry: Published templates.
        store: Persistence for instances and history.
        resolver: Assignment and authorization against the user directory.
        sub_tasks: Checklist handling for step executions.
        dispatcher: Optional notification dispatcher.
        config: Retry and SLA settings.
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        store: WorkflowStore,
        directory: UserDirectory,
        dispatcher: NotificationDispatcher | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            registry: The template registry.
            store: Store implementing the ``WorkflowStore`` protocol.
            directory: Directory implementing the ``UserDirectory`` protocol.
            dispatcher: Optional dispatcher implementing ``NotificationDispatcher``.
            config: Engine settings; defaults to :class:`EngineConfig`.
            clock: Returns the current time; defaults to UTC wall-clock time.
        """
        self.registry = registry
        self.store = store
        self.resolver = AssignmentResolver(directory)
        self.sub_tasks = SubTaskTracker()
        self.dispatcher = dispatcher
        self.config = config or EngineConfig()
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    # Read surface

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        """Load an instance.

        Raises:
            InstanceNotFoundError: If no instance has this id.
        """
        instance = await self.store.load_instance(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance

    async def get_history(self, instance_id: UUID) -> list[TransitionRecord]:
        """Return an instance's history ordered by timestamp, then sequence."""
        await self.get_instance(instance_id)
        return HistoryLog.ordered(await self.store.list_history(instance_id))

    async def get_progress(self, instance_id: UUID) -> WorkflowProgress:
        instance = await self.get_instance(instance_id)
        return build_progress(self._template_for(instance), instance)

    async def list_sub_tasks(self, step_execution_id: UUID) -> list[SubTask]:
        instance = await self._load_by_execution(step_execution_id)
        return self.sub_tasks.list_sub_tasks(self._execution(instance, step_execution_id))

    async def eligible_assignees(self, step_execution_id: UUID) -> frozenset[str]:
        """Return who currently holds the role required by an execution's step.

        The directory is queried live, so the answer reflects role changes made
        since the step opened.
        """
        instance = await self._load_by_execution(step_execution_id)
        execution = self._execution(instance, step_execution_id)
        step = self._step(self._template_for(instance), execution.step_key)
        return await self.resolver.eligible_users(step, instance.context)

    # Write path

    async def atomic_update(
        self,
        load: Callable[[], Awaitable[WorkflowInstance]],
        mutate: Callable[[UnitOfWork[T]], Awaitable[None]],
        *,
        expected_version: int | None = None,
    ) -> T | None:
        """Apply ``mutate`` to a fresh copy of an instance and save it atomically.

        A write that loses a version race is retried on freshly loaded state,
        re-running every check in ``mutate``, up to ``config.max_retries`` times.
        When ``expected_version`` is given the caller's read is authoritative:
        any mismatch fails immediately without retrying.

        Args:
            load: Loads the instance; raises a ``NotFoundError`` if it is gone.
            mutate: Validates and changes ``unit.instance``, stages records in
                ``unit.log`` and events via ``unit.notify``.
            expected_version: Version the caller last saw.

        Returns:
            ``unit.result`` as set by ``mutate``.

        Raises:
            ConcurrentModificationError: If the version is stale or the retry
                budget is exhausted.
            NotificationDeliveryError: If the dispatcher fails after the write
                was committed.
        """
        attempt = 0
        while True:
            instance = await load()
            if expected_version is not None and instance.version != expected_version:
                raise ConcurrentModificationError(instance.id, expected_version, instance.version)

            read_version = instance.version
            unit: UnitOfWork[T] = UnitOfWork(
                instance=instance,
                template=self._template_for(instance),
                log=HistoryLog(instance.id, next_sequence=instance.history_length + 1),
            )
            await mutate(unit)
            if not unit.changed:
                return unit.result

            instance.history_length = unit.log.last_sequence
            try:
                await self.store.save_instance(instance, read_version, unit.log.pending)
            except ConcurrentModificationError:
                if expected_version is not None or attempt >= self.config.max_retries:
                    logger.warning(
                        "Giving up on instance %s after %d attempt(s): concurrent modification",
                        instance.id,
                        attempt + 1,
                    )
                    raise
                attempt += 1
                logger.debug("Version conflict on instance %s, retrying (%d)", instance.id, attempt)
                continue

            await self._dispatch(unit.notifications)
            return unit.result

    async def create_instance(
        self,
        claim_id: str,
        template_id: str,
        version: int | None = None,
        *,
        actor_id: str | None = None,
        scope_id: str | None = None,
        context: ClaimData | None = None,
        step_assignments: Mapping[str, str] | None = None,
    ) -> WorkflowInstance:
        """Start a workflow for a claim at the template's first step.

        Args:
            claim_id: The claim to route.
            template_id: Template to run.
            version: Template version; None picks the latest published one.
            actor_id: Who started the workflow; defaults to the system actor.
            scope_id: Shop or branch used to scope role lookups.
            context: Free-form claim attributes.
            step_assignments: Assignees planned for this claim, keyed by step.
                They take precedence over auto-assign users and role lookups.

        Returns:
            The stored instance.

        Raises:
            TemplateNotFoundError: If the template or version is unknown.
            StepNotFoundError: If ``step_assignments`` names a step the template lacks.
            InstanceAlreadyActiveError: If the claim already has an active instance.

        Example:
            >>> instance = await engine.create_instance(
            ...     "CLM-1001", "warranty-repair", actor_id="clerk-1", scope_id="shop-3"
            ... )
        """
        template = self.registry.get_template(template_id, version)
        for step_key in step_assignments or {}:
            if template.get_step(step_key) is None:
                raise StepNotFoundError(template.id, template.version, step_key)
        existing = await self.store.find_active_instance(claim_id)
        if existing is not None:
            raise InstanceAlreadyActiveError(claim_id, existing.id)

        now = self.now()
        actor_id = actor_id or self.config.system_actor_id
        initial = template.initial_step
        data = dict(context or {})
        if step_assignments:
            data[STEP_ASSIGNMENTS_KEY] = dict(step_assignments)
        instance = WorkflowInstance(
            id=uuid4(),
            claim_id=claim_id,
            template_id=template.id,
            template_version=template.version,
            current_step_key=initial.key,
            status=InstanceStatus.ACTIVE,
            created_at=now,
            scope_id=scope_id,
            data=data,
        )
        unit: UnitOfWork[None] = UnitOfWork(instance=instance, template=template, log=HistoryLog(instance.id))

        await self._open_step(unit, initial, now)
        unit.log.append(
            from_step_key=None,
            to_step_key=initial.key,
            actor_id=actor_id,
            timestamp=now,
            reason=HistoryReason.INSTANCE_CREATED,
            details={"template_id": template.id, "template_version": template.version},
        )
        instance.history_length = unit.log.last_sequence

        await self.store.insert_instance(instance, unit.log.pending)
        logger.info(
            "Created instance %s for claim %s from template %s v%d",
            instance.id,
            claim_id,
            template.id,
            template.version,
        )
        await self._dispatch(unit.notifications)
        return instance

    async def advance(
        self,
        instance_id: UUID,
        actor_id: str,
        target_step_key: str | None,
        *,
        expected_version: int | None = None,
    ) -> WorkflowInstance:
        """Close the current step and move the claim to ``target_step_key``.

        Passing None for the target completes the instance; this is only legal
        from a step with no successors.

        Raises:
            InstanceNotFoundError: If the instance does not exist.
            InstanceNotActiveError: If the instance is completed or cancelled.
            NoOpenStepError: If an active instance has no open execution.
            IllegalTransitionError: If the target is not a successor of the current step.
            SubTasksIncompleteError: If required sub-tasks are still pending.
            NotAuthorizedError: If the actor is neither assignee nor override holder.
            ConcurrentModificationError: If ``expected_version`` is stale.
        """
        target_step_key = target_step_key or None

        async def mutate(unit: UnitOfWork[WorkflowInstance]) -> None:
            await self._close_and_move(unit, actor_id, target_step_key, skip=False)

        instance = await self.atomic_update(
            lambda: self.get_instance(instance_id),
            mutate,
            expected_version=expected_version,
        )
        logger.info(
            "Instance %s advanced by %s to %s",
            instance_id,
            actor_id,
            target_step_key or "completion",
        )
        return instance

    async def skip(
        self,
        instance_id: UUID,
        actor_id: str,
        target_step_key: str | None,
        *,
        expected_version: int | None = None,
    ) -> WorkflowInstance:
        """Leave the current step without completing it.

        Only steps declared with ``can_skip`` may be skipped. Target and
        authorization checks are the same as for :meth:`advance`, but pending
        required sub-tasks do not block a skip. The step is closed as skipped.

        Raises:
            InstanceNotActiveError: If the instance is completed or cancelled.
            IllegalTransitionError: If the step cannot be skipped or the target is not a successor.
            NotAuthorizedError: If the actor is neither assignee nor override holder.
            ConcurrentModificationError: If ``expected_version`` is stale.
        """
        target_step_key = target_step_key or None

        async def mutate(unit: UnitOfWork[WorkflowInstance]) -> None:
            await self._close_and_move(unit, actor_id, target_step_key, skip=True)

        instance = await self.atomic_update(
            lambda: self.get_instance(instance_id),
            mutate,
            expected_version=expected_version,
        )
        logger.info(
            "Instance %s skipped by %s to %s",
            instance_id,
            actor_id,
            target_step_key or "completion",
        )
        return instance

    async def cancel(self, instance_id: UUID, actor_id: str, reason: str) -> None:
        """Cancel an active instance.

        Raises:
            InstanceNotActiveError: If the instance is already finished.
            NotAuthorizedError: If the actor is neither assignee nor override holder.
        """

        async def mutate(unit: UnitOfWork[None]) -> None:
            instance = unit.instance
            execution = self._require_open(instance)
            if not await self.resolver.is_authorized(actor_id, execution):
                raise NotAuthorizedError(actor_id, "cancel instance")

            now = self.now()
            execution.status = ExecutionStatus.SKIPPED
            execution.closed_at = now
            instance.status = InstanceStatus.CANCELLED
            instance.completed_at = now
            unit.log.append(
                from_step_key=execution.step_key,
                to_step_key=None,
                actor_id=actor_id,
                timestamp=now,
                reason=reason or "cancelled",
            )
            unit.notify(
                NotificationKind.CANCELLED,
                [execution.assignee_id] if execution.assignee_id else [],
                now,
                cancelled_by=actor_id,
                reason=reason,
            )

        await self.atomic_update(lambda: self.get_instance(instance_id), mutate)
        logger.info("Instance %s cancelled by %s: %s", instance_id, actor_id, reason)

    async def force_reassign(self, step_execution_id: UUID, new_assignee_id: str, actor_id: str) -> StepExecution:
        """Assign an open execution to any user, bypassing role eligibility.

        Raises:
            NotAuthorizedError: If the actor lacks override capability.
            IllegalTransitionError: If the execution is closed.
        """
        if not await self.resolver.has_override(actor_id):
            raise NotAuthorizedError(actor_id, "force reassign")

        async def mutate(unit: UnitOfWork[StepExecution]) -> None:
            execution = self._execution(unit.instance, step_execution_id)
            if not execution.is_open:
                raise IllegalTransitionError(execution.step_key, execution.step_key, "step execution is closed")

            now = self.now()
            previous = execution.assignee_id
            execution.assignee_id = new_assignee_id
            unit.log.append(
                from_step_key=execution.step_key,
                to_step_key=execution.step_key,
                actor_id=actor_id,
                timestamp=now,
                reason=HistoryReason.FORCE_REASSIGN,
                details={"previous_assignee": previous, "new_assignee": new_assignee_id},
            )
            unit.notify(
                NotificationKind.TRANSITION,
                [new_assignee_id],
                now,
                step_key=execution.step_key,
                previous_assignee=previous,
                reassigned_by=actor_id,
            )
            unit.result = execution

        execution = await self.atomic_update(lambda: self._load_by_execution(step_execution_id), mutate)
        logger.info("Execution %s reassigned to %s by %s", step_execution_id, new_assignee_id, actor_id)
        return execution

    async def add_sub_task(
        self,
        step_execution_id: UUID,
        key: str,
        label: str,
        *,
        sort_order: int | None = None,
    ) -> SubTask:
        """Attach an optional sub-task to an open execution.

        Required sub-tasks are created when the step opens, so a sub-task added
        here never gates the step.
        """

        async def mutate(unit: UnitOfWork[SubTask]) -> None:
            execution = self._execution(unit.instance, step_execution_id)
            unit.result = self.sub_tasks.add_sub_task(execution, key, label, sort_order=sort_order)

        return await self.atomic_update(lambda: self._load_by_execution(step_execution_id), mutate)

    async def complete_sub_task(self, step_execution_id: UUID, key: str, actor_id: str) -> SubTask:
        """Mark a sub-task done.

        Completing a sub-task that is already done changes nothing and writes no
        history. Completing the last pending required sub-task notifies the
        assignee that the step is ready to advance.
        """

        async def mutate(unit: UnitOfWork[SubTask]) -> None:
            execution = self._execution(unit.instance, step_execution_id)
            now = self.now()
            sub_task, changed = self.sub_tasks.complete_sub_task(execution, key, actor_id, now)
            unit.result = sub_task
            if not changed:
                unit.changed = False
                return

            unit.log.append(
                from_step_key=execution.step_key,
                to_step_key=execution.step_key,
                actor_id=actor_id,
                timestamp=now,
                reason=HistoryReason.SUB_TASK_COMPLETED,
                details={"sub_task": key},
            )
            step = self._step(unit.template, execution.step_key)
            if sub_task.required and not self.sub_tasks.pending_required(execution, step):
                unit.notify(
                    NotificationKind.STEP_READY,
                    [execution.assignee_id] if execution.assignee_id else [],
                    now,
                    step_key=execution.step_key,
                )

        return await self.atomic_update(lambda: self._load_by_execution(step_execution_id), mutate)

    async def update_work_status(
        self,
        instance_id: UUID,
        actor_id: str,
        status: WorkStatus,
        notes: str | None = None,
    ) -> StepExecution:
        """Record the assignee's progress on the current step.

        Work status has no effect on which transitions are legal.

        Raises:
            NotAuthorizedError: If the actor is neither assignee nor override holder.
        """

        async def mutate(unit: UnitOfWork[StepExecution]) -> None:
            execution = self._require_open(unit.instance)
            if not await self.resolver.is_authorized(actor_id, execution):
                raise NotAuthorizedError(actor_id, f"update status of step '{execution.step_key}'")

            unit.result = execution
            previous = execution.work_status
            if previous == status and notes is None:
                unit.changed = False
                return

            execution.work_status = WorkStatus(status)
            unit.log.append(
                from_step_key=execution.step_key,
                to_step_key=execution.step_key,
                actor_id=actor_id,
                timestamp=self.now(),
                reason=HistoryReason.STEP_STATUS_CHANGED,
                details={"previous_status": str(previous), "new_status": str(status), "notes": notes},
            )

        return await self.atomic_update(lambda: self.get_instance(instance_id), mutate)

    async def plan_step_assignment(
        self,
        instance_id: UUID,
        step_key: str,
        assignee_id: str | None,
        actor_id: str,
    ) -> WorkflowInstance:
        """Plan who will be assigned a step of this claim when it next opens.

        Passing None for ``assignee_id`` removes the plan. The step that is
        currently open keeps its assignee; use :meth:`force_reassign` for that.

        Raises:
            NotAuthorizedError: If the actor lacks override capability.
            InstanceNotActiveError: If the instance is completed or cancelled.
            StepNotFoundError: If the template has no such step.
        """
        if not await self.resolver.has_override(actor_id):
            raise NotAuthorizedError(actor_id, "plan step assignments")

        async def mutate(unit: UnitOfWork[WorkflowInstance]) -> None:
            instance = unit.instance
            execution = self._require_open(instance)
            if unit.template.get_step(step_key) is None:
                raise StepNotFoundError(unit.template.id, unit.template.version, step_key)

            planned = instance.context.step_assignments
            previous = planned.get(step_key)
            unit.result = instance
            if previous == assignee_id:
                unit.changed = False
                return

            if assignee_id is None:
                del planned[step_key]
            else:
                planned[step_key] = assignee_id
            instance.data[STEP_ASSIGNMENTS_KEY] = planned
            unit.log.append(
                from_step_key=execution.step_key,
                to_step_key=execution.step_key,
                actor_id=actor_id,
                timestamp=self.now(),
                reason=HistoryReason.STEP_ASSIGNMENT_PLANNED,
                details={"step_key": step_key, "previous_assignee": previous, "new_assignee": assignee_id},
            )

        return await self.atomic_update(lambda: self.get_instance(instance_id), mutate)

    # Helpers

    async def _close_and_move(
        self,
        unit: UnitOfWork[WorkflowInstance],
        actor_id: str,
        target_step_key: str | None,
        *,
        skip: bool,
    ) -> None:
        """Close the open step and enter ``target_step_key``, or complete the instance."""
        instance = unit.instance
        execution = self._require_open(instance)
        current = self._step(unit.template, execution.step_key)

        if skip and not current.can_skip:
            raise IllegalTransitionError(current.key, target_step_key, "step cannot be skipped")
        if current.is_terminal:
            if target_step_key is not None:
                raise IllegalTransitionError(current.key, target_step_key, "step has no successors")
        elif target_step_key not in current.allowed_next:
            raise IllegalTransitionError(
                current.key,
                target_step_key,
                f"allowed targets are {', '.join(current.allowed_next)}",
            )

        if not skip:
            pending = self.sub_tasks.pending_required(execution, current)
            if pending:
                raise SubTasksIncompleteError(current.key, pending)

        operation = "skip" if skip else "advance"
        if not await self.resolver.is_authorized(actor_id, execution):
            raise NotAuthorizedError(actor_id, f"{operation} step '{current.key}'")

        now = self.now()
        execution.status = ExecutionStatus.SKIPPED if skip else ExecutionStatus.COMPLETED
        execution.closed_at = now

        if target_step_key is None:
            instance.status = InstanceStatus.COMPLETED
            instance.completed_at = now
            unit.notify(
                NotificationKind.COMPLETED,
                [execution.assignee_id] if execution.assignee_id else [],
                now,
                completed_by=actor_id,
            )
        else:
            await self._open_step(unit, self._step(unit.template, target_step_key), now)

        unit.log.append(
            from_step_key=current.key,
            to_step_key=target_step_key,
            actor_id=actor_id,
            timestamp=now,
            reason=HistoryReason.STEP_SKIPPED if skip else HistoryReason.MANUAL_ADVANCE,
        )
        unit.result = instance

    async def _open_step(self, unit: UnitOfWork[Any], step: StepDefinition, now: datetime) -> StepExecution:
        """Open a new execution of ``step`` on the unit's instance.

        Computes the SLA deadline and warning time, creates the required
        sub-tasks, and resolves the assignee.
        """
        instance = unit.instance
        execution = StepExecution(
            id=uuid4(),
            step_key=step.key,
            sequence=len(instance.executions) + 1,
            opened_at=now,
        )
        if step.sla is not None:
            execution.sla_deadline = now + step.sla
            warning = step.sla_warning
            if warning is None:
                warning = step.sla * self.config.default_sla_warning_ratio
            if warning:
                execution.sla_warning_at = execution.sla_deadline - warning

        self.sub_tasks.open_required(execution, step)

        assignment = await self.resolver.resolve_assignee(step, instance.context)
        execution.assignee_id = assignment.assignee_id
        execution.eligible_assignees = assignment.eligible

        instance.executions.append(execution)
        instance.current_step_key = step.key

        if assignment.is_assigned:
            unit.notify(NotificationKind.TRANSITION, [assignment.assignee_id], now, step_key=step.key)
        elif assignment.needs_manual_pick:
            unit.notify(
                NotificationKind.UNASSIGNED,
                assignment.eligible,
                now,
                step_key=step.key,
                execution_id=str(execution.id),
            )
        else:
            unit.notify(
                NotificationKind.NO_ELIGIBLE_ASSIGNEE,
                [],
                now,
                step_key=step.key,
                required_role=step.required_role,
                scope_id=instance.scope_id,
            )
        return execution

    async def _dispatch(self, notifications: list[WorkflowNotification]) -> None:
        if not notifications:
            return
        if self.dispatcher is None:
            logger.debug("No dispatcher configured, dropping %d notification(s)", len(notifications))
            return
        for notification in notifications:
            try:
                await self.dispatcher.notify(notification)
            except Exception as exc:
                raise NotificationDeliveryError(notification.instance_id, notification.kind, exc) from exc

    async def _load_by_execution(self, step_execution_id: UUID) -> WorkflowInstance:
        instance = await self.store.find_instance_by_execution(step_execution_id)
        if instance is None:
            raise StepExecutionNotFoundError(step_execution_id)
        return instance

    def _template_for(self, instance: WorkflowInstance) -> WorkflowTemplate:
        return self.registry.get_template(instance.template_id, instance.template_version)

    @staticmethod
    def _step(template: WorkflowTemplate, key: str) -> StepDefinition:
        step = template.get_step(key)
        if step is None:
            raise IllegalTransitionError(key, key, f"step is not part of template '{template.id}'")
        return step

    @staticmethod
    def _execution(instance: WorkflowInstance, step_execution_id: UUID) -> StepExecution:
        execution = instance.get_execution(step_execution_id)
        if execution is None:
            raise StepExecutionNotFoundError(step_execution_id)
        return execution

    @staticmethod
    def _require_open(instance: WorkflowInstance) -> StepExecution:
        if not instance.is_active:
            raise InstanceNotActiveError(instance.id, instance.status)
        execution = instance.open_execution
        if execution is None:
            raise NoOpenStepError(instance.id)
        return execution
