"""Exception handling for Litestar applications using the workflow engine.

The engine raises plain Python exceptions and knows nothing about HTTP. The
handler in this module maps the :mod:`claim_workflows.exceptions` hierarchy to
JSON error responses so route handlers can call the engine directly.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from litestar import Response
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from claim_workflows.exceptions import (
    ConcurrentModificationError,
    InstanceAlreadyActiveError,
    InvalidTemplateError,
    NotAuthorizedError,
    NotFoundError,
    NotificationDeliveryError,
    RequestRejectedError,
    SubTasksIncompleteError,
    WorkflowsError,
)

if TYPE_CHECKING:  # pragma: no cover
    from litestar import Request

__all__ = ["error_code_for", "status_code_for", "workflow_exception_handler"]

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
_STATUS_CODES: tuple[tuple[type[WorkflowsError], int], ...] = (
    (NotFoundError, HTTP_404_NOT_FOUND),
    (ConcurrentModificationError, HTTP_409_CONFLICT),
    (InstanceAlreadyActiveError, HTTP_409_CONFLICT),
    (NotAuthorizedError, HTTP_403_FORBIDDEN),
    (InvalidTemplateError, HTTP_422_UNPROCESSABLE_ENTITY),
    (RequestRejectedError, HTTP_400_BAD_REQUEST),
    (NotificationDeliveryError, HTTP_502_BAD_GATEWAY),
)


def status_code_for(exc: WorkflowsError) -> int:
    """Return the HTTP status code for an engine exception.

    Anything not listed, such as ``NoOpenStepError``, signals a broken
    invariant and maps to 500.
    """
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return HTTP_500_INTERNAL_SERVER_ERROR


def error_code_for(exc: WorkflowsError) -> str:
    """Return a snake_case error code derived from the exception class name.

    Example:
        >>> error_code_for(InstanceNotFoundError(uuid4()))
        'instance_not_found'
    """
    name = type(exc).__name__.removesuffix("Error")
    return "".join(f"_{char.lower()}" if char.isupper() else char for char in name).lstrip("_")


def workflow_exception_handler(_request: Request, exc: WorkflowsError) -> Response:
    """Exception handler for :class:`WorkflowsError` and its subclasses.

    Args:
        _request: The Litestar request object.
        exc: The exception raised by the engine.

    Returns:
        JSON response with an error code, the message and context fields.
    """
    status_code = status_code_for(exc)
    content: dict[str, Any] = {"error": error_code_for(exc), "message": str(exc)}

    if isinstance(exc, SubTasksIncompleteError):
        content["pending_keys"] = list(exc.pending_keys)
    elif isinstance(exc, InvalidTemplateError):
        content["errors"] = list(exc.errors)
    elif isinstance(exc, ConcurrentModificationError):
        content["expected_version"] = exc.expected_version
        content["actual_version"] = exc.actual_version
    elif isinstance(exc, NotificationDeliveryError):
        content["instance_id"] = str(exc.instance_id)

    if status_code == HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Workflow invariant violated: %s", exc)

    return Response(content=content, status_code=status_code, media_type="application/json")
