"""Litestar integration helpers.

This package maps engine exceptions to HTTP responses. It registers no routes:
applications expose the engine through their own controllers.
"""

from __future__ import annotations

from claim_workflows.web.exceptions import error_code_for, status_code_for, workflow_exception_handler

__all__ = ["error_code_for", "status_code_for", "workflow_exception_handler"]
