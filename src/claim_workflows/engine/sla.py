"""SLA monitoring for open step executions.

The monitor is meant to be run periodically, for example from a scheduled job.
Each run scans active instances and marks executions whose warning time or
deadline has passed. Marks are monotonic, so running the monitor again over
the same state writes nothing and notifies nobody.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from claim_workflows.core.types import HistoryReason, NotificationKind
from claim_workflows.exceptions import ConcurrentModificationError, InstanceNotFoundError, NotificationDeliveryError

if TYPE_CHECKING:
    from datetime import datetime

    from claim_workflows.core.models import StepExecution
    from claim_workflows.engine.transition import TransitionEngine, UnitOfWork

__all__ = ["SLAMonitor", "SLAReport"]

logger = logging.getLogger(__name__)


@dataclass
class SLAReport:
    """Outcome of one monitor run.

    Attributes:
        checked_at: The time the run evaluated deadlines against.
        scanned: Number of active instances inspected.
        warned: Executions that received an SLA warning.
        breached: Executions that were marked breached and escalated.
        conflicts: Instances whose write kept losing version races.
        failed: Instances whose mark was committed but whose notification
            could not be delivered.
    """

    checked_at: datetime
    scanned: int = 0
    warned: list[UUID] = field(default_factory=list)
    breached: list[UUID] = field(default_factory=list)
    conflicts: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


def _due(execution: StepExecution, now: datetime) -> HistoryReason | None:
    if not execution.is_open or execution.sla_deadline is None or execution.sla_breached:
        return None
    if now > execution.sla_deadline:
        return HistoryReason.SLA_BREACH
    if not execution.sla_warned and execution.sla_warning_at is not None and now >= execution.sla_warning_at:
        return HistoryReason.SLA_WARNING
    return None


class SLAMonitor:
    """Flags SLA warnings and breaches and escalates them.

    Attributes:
        engine: The transition engine whose write path and resolver are used.
    """

    def __init__(self, engine: TransitionEngine) -> None:
        self.engine = engine

    async def run(self, now: datetime | None = None) -> SLAReport:
        """Evaluate every active instance against ``now``.

        A version conflict that survives the engine's retries is reported in
        :attr:`SLAReport.conflicts` rather than raised, so one busy instance
        does not stop the sweep. A dispatcher failure is reported in
        :attr:`SLAReport.failed` and the sweep moves on to the next instance.

        Records and notifications are stamped with the engine clock; ``now``
        is only the time deadlines are evaluated against.

        Args:
            now: Evaluation time; defaults to the engine clock.

        Returns:
            What this run changed.
        """
        now = now or self.engine.now()
        report = SLAReport(checked_at=now)

        for instance in await self.engine.store.list_active_instances():
            report.scanned += 1
            execution = instance.open_execution
            if execution is None or _due(execution, now) is None:
                continue

            try:
                marked = await self.engine.atomic_update(
                    lambda instance_id=instance.id: self.engine.get_instance(instance_id),
                    lambda unit, execution_id=execution.id: self._mark(unit, execution_id, now),
                )
            except ConcurrentModificationError:
                logger.warning("SLA check of instance %s skipped after repeated conflicts", instance.id)
                report.conflicts.append(instance.id)
                continue
            except InstanceNotFoundError:
                logger.debug("Instance %s disappeared during SLA check", instance.id)
                continue
            except NotificationDeliveryError as exc:
                logger.error("SLA mark on instance %s was saved but not delivered: %s", instance.id, exc)
                report.failed.append(instance.id)
                continue

            if marked == HistoryReason.SLA_BREACH:
                report.breached.append(execution.id)
            elif marked == HistoryReason.SLA_WARNING:
                report.warned.append(execution.id)

        if report.breached or report.warned:
            logger.info(
                "SLA run at %s: %d breach(es), %d warning(s) across %d instance(s)",
                now.isoformat(),
                len(report.breached),
                len(report.warned),
                report.scanned,
            )
        return report

    async def _mark(self, unit: UnitOfWork[HistoryReason], execution_id: UUID, now: datetime) -> None:
        instance = unit.instance
        execution = instance.get_execution(execution_id)
        # The step may have been advanced or the instance cancelled since the scan
        reason = _due(execution, now) if execution is not None and instance.is_active else None
        if execution is None or reason is None:
            unit.changed = False
            return

        stamp = self.engine.now()
        step = unit.template.get_step(execution.step_key)
        recipients = await self.engine.resolver.escalation_recipients(step, execution, instance.context)
        details = {"deadline": execution.sla_deadline.isoformat(), "assignee": execution.assignee_id}

        if reason == HistoryReason.SLA_BREACH:
            execution.sla_breached = True
            details["overdue_seconds"] = (now - execution.sla_deadline).total_seconds()
            kind = NotificationKind.ESCALATION
            logger.warning(
                "Step %s of claim %s breached its SLA (deadline %s)",
                execution.step_key,
                instance.claim_id,
                execution.sla_deadline.isoformat(),
            )
        else:
            execution.sla_warned = True
            kind = NotificationKind.SLA_WARNING

        unit.log.append(
            from_step_key=execution.step_key,
            to_step_key=execution.step_key,
            actor_id=self.engine.config.system_actor_id,
            timestamp=stamp,
            reason=reason,
            details=details,
        )
        unit.notify(kind, recipients, stamp, step_key=execution.step_key, **details)
        unit.result = reason
