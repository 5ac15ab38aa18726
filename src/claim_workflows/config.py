"""Configuration for the transition engine and SLA monitor."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["EngineConfig"]


@dataclass(frozen=True)
class EngineConfig:
    """Runtime settings shared by the transition engine and the SLA monitor.

    Attributes:
        max_retries: How many times a write is retried on fresh state after an
            optimistic concurrency conflict before ``ConcurrentModificationError``
            is raised to the caller.
        default_sla_warning_ratio: Fraction of a step's SLA before the deadline
            at which a warning is raised, used when the step declares no
            explicit warning.
        system_actor_id: Actor id written into records produced by the SLA monitor.

    Example:
        >>> config = EngineConfig(max_retries=5, default_sla_warning_ratio=0.25)
    """

    max_retries: int = 3
    default_sla_warning_ratio: float = 0.2
    system_actor_id: str = "system"

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = "max_retries must not be negative"
            raise ValueError(msg)
        if not 0 <= self.default_sla_warning_ratio < 1:
            msg = "default_sla_warning_ratio must be in [0, 1)"
            raise ValueError(msg)
