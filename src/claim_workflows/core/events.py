"""Events handed to the notification dispatcher.

The engine never delivers email or SMS itself; it describes what happened and
who should hear about it, and the dispatcher decides how to deliver it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from claim_workflows.core.types import NotificationKind

__all__ = ["WorkflowNotification"]


@dataclass(frozen=True)
class WorkflowNotification:
    """A workflow event addressed to a set of users.

    Attributes:
        kind: What happened.
        instance_id: Instance the event relates to.
        claim_id: Claim owning the instance.
        step_key: Step the event relates to.
        recipients: User ids that should be told; may be empty for warnings
            nobody can act on yet.
        timestamp: When the event happened.
        details: Extra context such as the SLA deadline or eligible users.

    Example:
        >>> event = WorkflowNotification(
        ...     kind=NotificationKind.ESCALATION,
        ...     instance_id=uuid4(),
        ...     claim_id="CLM-1001",
        ...     step_key="quotation",
        ...     recipients=frozenset({"tech-7", "supervisor-2"}),
        ...     timestamp=datetime.now(timezone.utc),
        ... )
    """

    kind: NotificationKind
    instance_id: UUID
    claim_id: str
    step_key: str
    recipients: frozenset[str]
    timestamp: datetime
    details: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
