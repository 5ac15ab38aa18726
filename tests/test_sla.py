"""Tests for SLA monitoring and escalation."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import pytest

from claim_workflows.config import EngineConfig
from claim_workflows.core.history import HistoryLog
from claim_workflows.core.types import HistoryReason, NotificationKind
from claim_workflows.engine.memory import InMemoryWorkflowStore
from claim_workflows.engine.sla import SLAMonitor
from claim_workflows.engine.transition import TransitionEngine

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from claim_workflows.core.definition import WorkflowTemplate
    from claim_workflows.core.events import WorkflowNotification
    from claim_workflows.core.models import WorkflowInstance
    from claim_workflows.engine.registry import TemplateRegistry


class FailOnceDispatcher:
    """Dispatcher whose first delivery of one kind fails."""

    def __init__(self, kind: NotificationKind) -> None:
        self.kind = kind
        self.failed = False
        self.events: list[WorkflowNotification] = []

    async def notify(self, event: WorkflowNotification) -> None:
        if event.kind == self.kind and not self.failed:
            self.failed = True
            raise RuntimeError("smtp down")
        self.events.append(event)


class ScanRaceStore(InMemoryWorkflowStore):
    """Store that lets a competing write land right after the active-instance scan."""

    def __init__(self) -> None:
        super().__init__()
        self.after_scan: Callable[[], Awaitable[Any]] | None = None

    async def list_active_instances(self) -> Sequence[WorkflowInstance]:
        instances = await super().list_active_instances()
        if self.after_scan is not None:
            competitor, self.after_scan = self.after_scan, None
            await competitor()
        return instances


async def open_quotation(engine: TransitionEngine, claim_id: str = "CLM-1001") -> WorkflowInstance:
    instance = await engine.create_instance(claim_id, "warranty-repair", actor_id="clerk-1")
    await engine.complete_sub_task(instance.open_execution.id, "photos-uploaded", "clerk-1")
    await engine.advance(instance.id, "clerk-1", "diagnosis")
    return await engine.advance(instance.id, "tech-1", "quotation")


@pytest.fixture
def monitor(engine: TransitionEngine) -> SLAMonitor:
    return SLAMonitor(engine)


@pytest.mark.unit
@pytest.mark.asyncio
class TestDeadlines:
    """Tests for deadline computation when a step opens."""

    async def test_deadline_and_default_warning(self, engine: TransitionEngine, clock: Any) -> None:
        instance = await open_quotation(engine)
        quotation = instance.open_execution

        assert quotation.sla_deadline == clock.now + timedelta(hours=48)
        # 20% of 48h before the deadline
        assert quotation.sla_warning_at == clock.now + timedelta(hours=38.4)

    async def test_explicit_warning(
        self,
        registry: TemplateRegistry,
        store: Any,
        directory: Any,
        clock: Any,
        repair_template: WorkflowTemplate,
    ) -> None:
        steps = list(repair_template.steps)
        steps[0] = replace(steps[0], sla=timedelta(hours=4), sla_warning=timedelta(hours=1))
        registry.publish(replace(repair_template, version=2, steps=tuple(steps)))
        engine = TransitionEngine(registry, store, directory, clock=clock)

        instance = await engine.create_instance("CLM-1001", "warranty-repair", actor_id="clerk-1")

        assert instance.open_execution.sla_warning_at == clock.now + timedelta(hours=3)

    async def test_warning_disabled_by_zero_ratio(
        self,
        registry: TemplateRegistry,
        store: Any,
        directory: Any,
        clock: Any,
    ) -> None:
        engine = TransitionEngine(
            registry,
            store,
            directory,
            config=EngineConfig(default_sla_warning_ratio=0),
            clock=clock,
        )

        instance = await open_quotation(engine)

        assert instance.open_execution.sla_deadline is not None
        assert instance.open_execution.sla_warning_at is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestSLAMonitor:
    """Tests for SLAMonitor runs."""

    async def test_breach_escalates_once(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
        dispatcher: Any,
    ) -> None:
        instance = await open_quotation(engine)
        quotation_id = instance.open_execution.id

        report = await monitor.run(clock.now + timedelta(hours=49))

        assert report.breached == [quotation_id]
        assert report.warned == []
        escalations = dispatcher.of_kind(NotificationKind.ESCALATION)
        assert len(escalations) == 1
        assert escalations[0].recipients == frozenset({"estimator-1", "supervisor-1"})
        assert escalations[0].step_key == "quotation"
        assert escalations[0].details["overdue_seconds"] == 3600
        assert (await engine.get_instance(instance.id)).open_execution.sla_breached

        second = await monitor.run(clock.now + timedelta(hours=50))

        assert second.breached == []
        assert len(dispatcher.of_kind(NotificationKind.ESCALATION)) == 1

    async def test_breach_record(self, engine: TransitionEngine, monitor: SLAMonitor, clock: Any) -> None:
        instance = await open_quotation(engine)
        deadline = instance.open_execution.sla_deadline

        await monitor.run(clock.now + timedelta(hours=49))

        history = await engine.get_history(instance.id)
        breach = HistoryLog.for_reason(history, HistoryReason.SLA_BREACH)
        assert len(breach) == 1
        assert breach[0].actor_id == "system"
        assert breach[0].from_step_key == breach[0].to_step_key == "quotation"
        assert breach[0].details["deadline"] == deadline.isoformat()
        assert breach[0].details["assignee"] == "estimator-1"
        # SLA markers never move the claim
        assert HistoryLog.replay(history)[-1] == "quotation"

    async def test_exact_deadline_is_not_a_breach(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
    ) -> None:
        await open_quotation(engine)

        report = await monitor.run(clock.now + timedelta(hours=48))

        assert report.breached == []
        assert len(report.warned) == 1

    async def test_warning_before_breach(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
        dispatcher: Any,
    ) -> None:
        instance = await open_quotation(engine)
        quotation_id = instance.open_execution.id

        assert (await monitor.run(clock.now + timedelta(hours=38))).warned == []

        report = await monitor.run(clock.now + timedelta(hours=39))
        assert report.warned == [quotation_id]
        warnings = dispatcher.of_kind(NotificationKind.SLA_WARNING)
        assert len(warnings) == 1
        assert warnings[0].recipients == frozenset({"estimator-1", "supervisor-1"})

        assert (await monitor.run(clock.now + timedelta(hours=40))).warned == []

        report = await monitor.run(clock.now + timedelta(hours=49))
        assert report.breached == [quotation_id]
        assert len(dispatcher.of_kind(NotificationKind.SLA_WARNING)) == 1
        assert len(dispatcher.of_kind(NotificationKind.ESCALATION)) == 1

    async def test_breach_supersedes_pending_warning(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
        dispatcher: Any,
    ) -> None:
        instance = await open_quotation(engine)

        await monitor.run(clock.now + timedelta(hours=49))

        stored = (await engine.get_instance(instance.id)).open_execution
        assert stored.sla_breached
        assert not stored.sla_warned
        assert dispatcher.of_kind(NotificationKind.SLA_WARNING) == []

    async def test_defaults_to_engine_clock(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
    ) -> None:
        await open_quotation(engine)
        clock.advance(hours=49)

        report = await monitor.run()

        assert report.checked_at == clock.now
        assert len(report.breached) == 1

    async def test_closed_steps_are_ignored(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
        dispatcher: Any,
    ) -> None:
        instance = await open_quotation(engine)
        await engine.advance(instance.id, "estimator-1", "approved")

        report = await monitor.run(clock.now + timedelta(hours=49))

        assert report.scanned == 1
        assert report.breached == []
        assert dispatcher.of_kind(NotificationKind.ESCALATION) == []

    async def test_finished_instances_are_not_scanned(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
    ) -> None:
        instance = await open_quotation(engine)
        await engine.cancel(instance.id, "estimator-1", "customer withdrew")

        report = await monitor.run(clock.now + timedelta(hours=49))

        assert report.scanned == 0

    async def test_unassigned_breach_goes_to_escalation_role(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
        directory: Any,
        dispatcher: Any,
    ) -> None:
        directory.revoke("estimator", "estimator-1")
        await open_quotation(engine)

        await monitor.run(clock.now + timedelta(hours=49))

        assert dispatcher.of_kind(NotificationKind.ESCALATION)[0].recipients == frozenset({"supervisor-1"})

    async def test_each_instance_checked(self, engine: TransitionEngine, monitor: SLAMonitor, clock: Any) -> None:
        await open_quotation(engine, "CLM-1")
        await open_quotation(engine, "CLM-2")
        await engine.create_instance("CLM-3", "warranty-repair", actor_id="clerk-1")

        report = await monitor.run(clock.now + timedelta(hours=49))

        assert report.scanned == 3
        assert len(report.breached) == 2

    async def test_marks_are_stamped_with_engine_clock(
        self,
        engine: TransitionEngine,
        monitor: SLAMonitor,
        clock: Any,
        dispatcher: Any,
    ) -> None:
        instance = await open_quotation(engine)

        await monitor.run(clock.now + timedelta(hours=49))
        await engine.advance(instance.id, "estimator-1", "approved")

        history = await engine.get_history(instance.id)
        assert HistoryLog.for_reason(history, HistoryReason.SLA_BREACH)[0].timestamp == clock.now
        assert [record.reason for record in history[-2:]] == [HistoryReason.SLA_BREACH, HistoryReason.MANUAL_ADVANCE]
        assert dispatcher.of_kind(NotificationKind.ESCALATION)[0].timestamp == clock.now

    async def test_delivery_failure_does_not_stop_the_sweep(
        self,
        registry: TemplateRegistry,
        store: Any,
        directory: Any,
        clock: Any,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        dispatcher = FailOnceDispatcher(NotificationKind.ESCALATION)
        engine = TransitionEngine(registry, store, directory, dispatcher=dispatcher, clock=clock)
        first = await open_quotation(engine, "CLM-1")
        second = await open_quotation(engine, "CLM-2")

        with caplog.at_level(logging.ERROR, logger="claim_workflows.engine.sla"):
            report = await SLAMonitor(engine).run(clock.now + timedelta(hours=49))

        assert report.failed == [first.id]
        assert report.breached == [second.open_execution.id]
        assert "was saved but not delivered" in caplog.text
        # The failed mark is committed, so it is not escalated a second time
        assert (await engine.get_instance(first.id)).open_execution.sla_breached
        assert (await engine.get_instance(second.id)).open_execution.sla_breached
        escalations = [event for event in dispatcher.events if event.kind == NotificationKind.ESCALATION]
        assert [event.claim_id for event in escalations] == ["CLM-2"]

    async def test_step_closed_after_scan_is_left_alone(
        self,
        registry: TemplateRegistry,
        directory: Any,
        clock: Any,
        dispatcher: Any,
    ) -> None:
        store = ScanRaceStore()
        engine = TransitionEngine(registry, store, directory, dispatcher=dispatcher, clock=clock)
        instance = await open_quotation(engine)
        quotation_id = instance.open_execution.id
        store.after_scan = lambda: engine.advance(instance.id, "estimator-1", "approved")

        report = await SLAMonitor(engine).run(clock.now + timedelta(hours=49))

        assert report.scanned == 1
        assert report.breached == []
        assert report.conflicts == []
        stored = await engine.get_instance(instance.id)
        assert stored.current_step_key == "approved"
        assert stored.version == instance.version + 1
        assert not stored.get_execution(quotation_id).sla_breached
        history = await engine.get_history(instance.id)
        assert HistoryLog.for_reason(history, HistoryReason.SLA_BREACH) == []
        assert dispatcher.of_kind(NotificationKind.ESCALATION) == []
