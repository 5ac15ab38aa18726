"""Litestar plugin for claim workflow integration.

This module provides the WorkflowPlugin, which wires a template registry,
transition engine and SLA monitor into a Litestar application.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from claim_workflows.config import EngineConfig
from claim_workflows.engine.memory import InMemoryWorkflowStore
from claim_workflows.engine.registry import TemplateRegistry
from claim_workflows.engine.sla import SLAMonitor
from claim_workflows.engine.transition import TransitionEngine
from claim_workflows.exceptions import WorkflowsError
from claim_workflows.web.exceptions import workflow_exception_handler

if TYPE_CHECKING:
    from litestar.config.app import AppConfig

    from claim_workflows.core.definition import WorkflowTemplate
    from claim_workflows.core.protocols import NotificationDispatcher, UserDirectory, WorkflowStore

__all__ = ["WorkflowPlugin", "WorkflowPluginConfig"]


@dataclass
class WorkflowPluginConfig:
    """Configuration for the WorkflowPlugin.

    Attributes:
        directory: User directory used for assignment and authorization.
            Required unless a pre-configured ``engine`` is given.
        registry: Optional pre-configured TemplateRegistry. If not provided,
            a new one will be created.
        store: Optional workflow store. Defaults to an in-memory store.
        dispatcher: Optional notification dispatcher.
        engine_config: Retry and SLA settings for the engine.
        engine: Optional pre-configured TransitionEngine. When given, the
            registry, store, directory, dispatcher and engine config are taken
            from it.
        templates: Templates to publish on app startup.
        dependency_key_registry: The key used for dependency injection of
            the TemplateRegistry. Defaults to "template_registry".
        dependency_key_engine: The key used for dependency injection of
            the TransitionEngine. Defaults to "workflow_engine".
        dependency_key_sla_monitor: The key used for dependency injection of
            the SLAMonitor. Defaults to "sla_monitor".
        register_exception_handler: Whether to map engine exceptions to HTTP
            responses. Defaults to True.
    """

    directory: UserDirectory | None = None
    registry: TemplateRegistry | None = None
    store: WorkflowStore | None = None
    dispatcher: NotificationDispatcher | None = None
    engine_config: EngineConfig = field(default_factory=EngineConfig)
    engine: TransitionEngine | None = None
    templates: list[WorkflowTemplate] = field(default_factory=list)
    dependency_key_registry: str = "template_registry"
    dependency_key_engine: str = "workflow_engine"
    dependency_key_sla_monitor: str = "sla_monitor"
    register_exception_handler: bool = True


class WorkflowPlugin(InitPluginProtocol):
    """Litestar plugin for claim workflow management.

    Example:
        Basic usage::

            from litestar import Litestar, post
            from claim_workflows import TransitionEngine, WorkflowPlugin, WorkflowPluginConfig


            @post("/claims/{claim_id:str}/workflow")
            async def start_workflow(claim_id: str, workflow_engine: TransitionEngine) -> dict:
                instance = await workflow_engine.create_instance(claim_id, "warranty-repair")
                return {"instance_id": str(instance.id), "step": instance.current_step_key}


            app = Litestar(
                route_handlers=[start_workflow],
                plugins=[
                    WorkflowPlugin(
                        config=WorkflowPluginConfig(directory=directory, templates=[warranty_repair])
                    )
                ],
            )
    """

    __slots__ = ("_config", "_engine", "_registry", "_sla_monitor")

    def __init__(self, config: WorkflowPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or WorkflowPluginConfig()
        self._registry: TemplateRegistry | None = None
        self._engine: TransitionEngine | None = None
        self._sla_monitor: SLAMonitor | None = None

    @property
    def registry(self) -> TemplateRegistry:
        """Get the template registry.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._registry is None:
            msg = "WorkflowPlugin has not been initialized. Access registry after app startup."
            raise RuntimeError(msg)
        return self._registry

    @property
    def engine(self) -> TransitionEngine:
        """Get the transition engine.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._engine is None:
            msg = "WorkflowPlugin has not been initialized. Access engine after app startup."
            raise RuntimeError(msg)
        return self._engine

    @property
    def sla_monitor(self) -> SLAMonitor:
        """Get the SLA monitor.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._sla_monitor is None:
            msg = "WorkflowPlugin has not been initialized. Access sla_monitor after app startup."
            raise RuntimeError(msg)
        return self._sla_monitor

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        Builds or reuses the registry and engine, publishes configured
        templates, adds dependency providers and registers the exception handler.

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.

        Raises:
            ValueError: If neither an engine nor a user directory is configured.
        """
        config = self._config
        if config.engine is not None:
            self._engine = config.engine
            self._registry = config.engine.registry
        else:
            if config.directory is None:
                msg = "WorkflowPluginConfig needs a user directory when no engine is provided"
                raise ValueError(msg)
            self._registry = config.registry or TemplateRegistry()
            self._engine = TransitionEngine(
                registry=self._registry,
                store=config.store or InMemoryWorkflowStore(),
                directory=config.directory,
                dispatcher=config.dispatcher,
                config=config.engine_config,
            )
        self._sla_monitor = SLAMonitor(self._engine)

        for template in config.templates:
            self._registry.publish(template)

        def provide_registry() -> TemplateRegistry:
            return self._registry  # type: ignore[return-value]

        def provide_engine() -> TransitionEngine:
            return self._engine  # type: ignore[return-value]

        def provide_sla_monitor() -> SLAMonitor:
            return self._sla_monitor  # type: ignore[return-value]

        app_config.dependencies[config.dependency_key_registry] = Provide(provide_registry, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_engine] = Provide(provide_engine, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_sla_monitor] = Provide(
            provide_sla_monitor,
            sync_to_thread=False,
        )

        if config.register_exception_handler:
            app_config.exception_handlers[WorkflowsError] = workflow_exception_handler  # type: ignore[assignment]

        return app_config
