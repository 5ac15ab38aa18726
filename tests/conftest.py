"""Shared test fixtures for claim-workflows test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import pytest

from claim_workflows.core.definition import StepDefinition, WorkflowTemplate

if TYPE_CHECKING:
    from claim_workflows.core.events import WorkflowNotification
    from claim_workflows.core.types import NotificationKind
    from claim_workflows.engine.memory import InMemoryWorkflowStore
    from claim_workflows.engine.registry import TemplateRegistry
    from claim_workflows.engine.transition import TransitionEngine


START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeDirectory:
    """In-memory user directory.

    Roles are granted per scope; a grant with scope None applies everywhere.
    """

    def __init__(self) -> None:
        self.roles: dict[tuple[str, str | None], set[str]] = {}
        self.overrides: set[str] = set()
        self.role_queries = 0

    def grant(self, role: str, *user_ids: str, scope_id: str | None = None) -> None:
        self.roles.setdefault((role, scope_id), set()).update(user_ids)

    def revoke(self, role: str, user_id: str, scope_id: str | None = None) -> None:
        self.roles.get((role, scope_id), set()).discard(user_id)

    async def users_with_role(self, role: str, scope_id: str | None) -> set[str]:
        self.role_queries += 1
        users = set(self.roles.get((role, None), set()))
        if scope_id is not None:
            users |= self.roles.get((role, scope_id), set())
        return users

    async def has_override_capability(self, user_id: str) -> bool:
        return user_id in self.overrides


class RecordingDispatcher:
    """Dispatcher that keeps every notification it receives."""

    def __init__(self) -> None:
        self.events: list[WorkflowNotification] = []

    async def notify(self, event: WorkflowNotification) -> None:
        self.events.append(event)

    def of_kind(self, kind: NotificationKind) -> list[WorkflowNotification]:
        return [event for event in self.events if event.kind == kind]

    def clear(self) -> None:
        self.events.clear()


class FakeClock:
    """Controllable clock for the engine."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_repair_template(version: int = 1) -> WorkflowTemplate:
    """Warranty repair template used across the suite.

    intake -> diagnosis -> quotation -> {approved, rejected} -> closed
    """
    return WorkflowTemplate(
        id="warranty-repair",
        name="Warranty repair",
        version=version,
        steps=(
            StepDefinition(
                key="intake",
                required_role="clerk",
                required_sub_tasks=frozenset({"photos-uploaded"}),
                allowed_next=("diagnosis",),
            ),
            StepDefinition(key="diagnosis", required_role="technician", allowed_next=("quotation",)),
            StepDefinition(
                key="quotation",
                required_role="estimator",
                sla=timedelta(hours=48),
                escalation_role="supervisor",
                allowed_next=("approved", "rejected"),
            ),
            StepDefinition(key="approved", required_role="technician", allowed_next=("closed",)),
            StepDefinition(key="rejected", required_role="clerk", allowed_next=("closed",)),
            StepDefinition(key="closed", required_role="clerk"),
        ),
    )


@pytest.fixture
def repair_template() -> WorkflowTemplate:
    return make_repair_template()


@pytest.fixture
def directory() -> FakeDirectory:
    """Directory with one user per role and one override holder."""
    directory = FakeDirectory()
    directory.grant("clerk", "clerk-1")
    directory.grant("technician", "tech-1")
    directory.grant("estimator", "estimator-1")
    directory.grant("supervisor", "supervisor-1")
    directory.overrides.add("manager-1")
    return directory


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(repair_template: WorkflowTemplate) -> TemplateRegistry:
    from claim_workflows.engine.registry import TemplateRegistry

    registry = TemplateRegistry()
    registry.publish(repair_template)
    return registry


@pytest.fixture
def store() -> InMemoryWorkflowStore:
    from claim_workflows.engine.memory import InMemoryWorkflowStore

    return InMemoryWorkflowStore()


@pytest.fixture
def engine(
    registry: TemplateRegistry,
    store: InMemoryWorkflowStore,
    directory: FakeDirectory,
    dispatcher: RecordingDispatcher,
    clock: FakeClock,
) -> TransitionEngine:
    """Transition engine wired to the in-memory store and test doubles."""
    from claim_workflows.engine.transition import TransitionEngine

    return TransitionEngine(registry, store, directory, dispatcher=dispatcher, clock=clock)


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest config object
    """
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
