"""Tests for optimistic concurrency on instance writes."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import pytest

from claim_workflows.config import EngineConfig
from claim_workflows.core.types import HistoryReason, InstanceStatus, WorkStatus
from claim_workflows.engine.memory import InMemoryWorkflowStore
from claim_workflows.engine.sla import SLAMonitor
from claim_workflows.engine.transition import TransitionEngine
from claim_workflows.exceptions import ConcurrentModificationError, InstanceNotActiveError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from claim_workflows.core.history import TransitionRecord
    from claim_workflows.core.models import WorkflowInstance
    from claim_workflows.engine.registry import TemplateRegistry


class InterleavingStore(InMemoryWorkflowStore):
    """Store that lets a competing write land just before the next save."""

    def __init__(self) -> None:
        super().__init__()
        self.before_save: Callable[[], Awaitable[Any]] | None = None
        self.saves = 0

    async def save_instance(
        self,
        instance: WorkflowInstance,
        expected_version: int,
        records: Sequence[TransitionRecord],
    ) -> None:
        self.saves += 1
        if self.before_save is not None:
            competitor, self.before_save = self.before_save, None
            await competitor()
        await super().save_instance(instance, expected_version, records)


class ContendedStore(InMemoryWorkflowStore):
    """Store whose saves always lose the version race."""

    def __init__(self) -> None:
        super().__init__()
        self.saves = 0

    async def save_instance(
        self,
        instance: WorkflowInstance,
        expected_version: int,
        records: Sequence[TransitionRecord],
    ) -> None:
        self.saves += 1
        raise ConcurrentModificationError(instance.id, expected_version, expected_version + 1)


async def open_quotation(engine: TransitionEngine) -> WorkflowInstance:
    instance = await engine.create_instance("CLM-1001", "warranty-repair", actor_id="clerk-1")
    await engine.complete_sub_task(instance.open_execution.id, "photos-uploaded", "clerk-1")
    await engine.advance(instance.id, "clerk-1", "diagnosis")
    return await engine.advance(instance.id, "tech-1", "quotation")


@pytest.mark.unit
@pytest.mark.asyncio
class TestExpectedVersion:
    """Tests for callers that pass the version they read."""

    async def test_concurrent_advances_from_same_version(self, engine: TransitionEngine) -> None:
        instance = await open_quotation(engine)
        seen = instance.version

        results = await asyncio.gather(
            engine.advance(instance.id, "estimator-1", "approved", expected_version=seen),
            engine.advance(instance.id, "manager-1", "rejected", expected_version=seen),
            return_exceptions=True,
        )

        succeeded = [result for result in results if not isinstance(result, BaseException)]
        failed = [result for result in results if isinstance(result, BaseException)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], ConcurrentModificationError)
        assert failed[0].expected_version == seen

        stored = await engine.get_instance(instance.id)
        assert stored.version == seen + 1
        assert stored.current_step_key == succeeded[0].current_step_key
        history = await engine.get_history(instance.id)
        assert len([record for record in history if record.from_step_key == "quotation"]) == 1

    async def test_stale_version_fails_without_writing(self, engine: TransitionEngine) -> None:
        instance = await open_quotation(engine)
        await engine.update_work_status(instance.id, "estimator-1", WorkStatus.STARTED)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await engine.advance(instance.id, "estimator-1", "approved", expected_version=instance.version)
        assert exc_info.value.actual_version == instance.version + 1

        assert (await engine.get_instance(instance.id)).current_step_key == "quotation"

    async def test_matching_version_succeeds(self, engine: TransitionEngine) -> None:
        instance = await open_quotation(engine)

        advanced = await engine.advance(instance.id, "estimator-1", "approved", expected_version=instance.version)

        assert advanced.version == instance.version + 1

    async def test_expected_version_is_not_retried(
        self,
        registry: TemplateRegistry,
        directory: Any,
        clock: Any,
    ) -> None:
        store = InterleavingStore()
        engine = TransitionEngine(registry, store, directory, clock=clock)
        instance = await open_quotation(engine)
        store.before_save = lambda: engine.update_work_status(instance.id, "estimator-1", WorkStatus.STARTED)
        store.saves = 0

        with pytest.raises(ConcurrentModificationError):
            await engine.advance(instance.id, "estimator-1", "approved", expected_version=instance.version)
        # One save for the advance, one for the competing status update
        assert store.saves == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestRetry:
    """Tests for automatic retries on fresh state."""

    async def test_retry_applies_change_on_fresh_state(
        self,
        registry: TemplateRegistry,
        directory: Any,
        clock: Any,
    ) -> None:
        store = InterleavingStore()
        engine = TransitionEngine(registry, store, directory, clock=clock)
        instance = await open_quotation(engine)
        store.before_save = lambda: engine.update_work_status(instance.id, "estimator-1", WorkStatus.IN_PROGRESS)

        advanced = await engine.advance(instance.id, "estimator-1", "approved")

        assert advanced.current_step_key == "approved"
        assert advanced.version == instance.version + 2
        history = await engine.get_history(instance.id)
        assert [record.reason for record in history[-2:]] == [
            HistoryReason.STEP_STATUS_CHANGED,
            HistoryReason.MANUAL_ADVANCE,
        ]
        assert [record.sequence for record in history] == list(range(1, len(history) + 1))

    async def test_retry_revalidates(
        self,
        registry: TemplateRegistry,
        directory: Any,
        clock: Any,
    ) -> None:
        store = InterleavingStore()
        engine = TransitionEngine(registry, store, directory, clock=clock)
        instance = await open_quotation(engine)
        store.before_save = lambda: engine.cancel(instance.id, "manager-1", "withdrawn")

        with pytest.raises(InstanceNotActiveError):
            await engine.advance(instance.id, "estimator-1", "approved")

        assert (await engine.get_instance(instance.id)).status == InstanceStatus.CANCELLED

    async def test_retry_budget_exhausted(self, registry: TemplateRegistry, directory: Any, clock: Any) -> None:
        store = ContendedStore()
        engine = TransitionEngine(registry, store, directory, config=EngineConfig(max_retries=2), clock=clock)
        instance = await engine.create_instance("CLM-1001", "warranty-repair", actor_id="clerk-1")

        with pytest.raises(ConcurrentModificationError):
            await engine.complete_sub_task(instance.open_execution.id, "photos-uploaded", "clerk-1")
        assert store.saves == 3

    async def test_no_op_writes_nothing(self, registry: TemplateRegistry, directory: Any, clock: Any) -> None:
        store = ContendedStore()
        engine = TransitionEngine(registry, store, directory, clock=clock)
        instance = await engine.create_instance("CLM-1001", "warranty-repair", actor_id="clerk-1")

        execution = await engine.update_work_status(instance.id, "clerk-1", WorkStatus.NOT_STARTED)

        assert execution.work_status == WorkStatus.NOT_STARTED
        assert store.saves == 0

    async def test_sla_monitor_reports_conflicts(self, registry: TemplateRegistry, directory: Any, clock: Any) -> None:
        store = ContendedStore()
        engine = TransitionEngine(registry, store, directory, config=EngineConfig(max_retries=1), clock=clock)
        instance = await engine.create_instance("CLM-1001", "warranty-repair", actor_id="clerk-1")
        # Open a step with an SLA directly in the store
        stored = store._instances[instance.id]
        stored.open_execution.sla_deadline = clock.now + timedelta(hours=1)

        report = await SLAMonitor(engine).run(clock.now + timedelta(hours=2))

        assert report.conflicts == [instance.id]
        assert report.breached == []
        assert store.saves == 2
