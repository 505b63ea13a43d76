"""Typed errors raised by the shift / timesheet workflow.

Every error carries a machine-readable ``code`` and structured ``data`` so that
routers can tell "not allowed" (PermissionDenied) apart from "wrong lifecycle
stage" (InvalidState / TerminalState) without parsing messages.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException


class WorkflowError(Exception):
    code = "workflow_error"
    status_code = 400

    def __init__(self, message: str, **data: Any):
        super().__init__(message)
        self.message = message
        self.data: Dict[str, Any] = data

    def to_dict(self) -> Dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        payload.update(self.data)
        return payload


class NotFound(WorkflowError):
    code = "not_found"
    status_code = 404


class InvalidState(WorkflowError):
    """Action is not legal from the current lifecycle state. Refresh and retry."""

    code = "invalid_state"
    status_code = 409


class TerminalState(WorkflowError):
    """Action attempted on a terminal worker or timesheet state."""

    code = "terminal_state"
    status_code = 409


class IncompleteShift(WorkflowError):
    code = "incomplete_shift"
    status_code = 409

    def __init__(self, message: str, active_workers: Optional[List[dict]] = None):
        super().__init__(message, active_workers=list(active_workers or []))

    @property
    def active_workers(self) -> List[dict]:
        return self.data["active_workers"]


class ValidationError(WorkflowError):
    """Required input (signature, rejection reason) is missing or malformed."""

    code = "validation_error"
    status_code = 422


class PermissionDenied(WorkflowError):
    code = "permission_denied"
    status_code = 403


def to_http_exception(exc: WorkflowError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())
