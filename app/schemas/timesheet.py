from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApproveTimesheetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approval_type: Literal["client", "manager"] = Field(alias="approvalType")
    signature: Optional[str] = None


class RejectTimesheetRequest(BaseModel):
    reason: Optional[str] = None


class TimesheetStatusResponse(BaseModel):
    timesheet_id: str
    status: str


class TimesheetResponse(BaseModel):
    id: str
    company_id: int
    shift_id: int
    status: str
    revision: int
    total_seconds: int
    total_hours: Decimal
    worker_totals: List[dict[str, Any]]
    submitted_by: Optional[str]
    submitted_at: Optional[datetime]
    client_signature: Optional[str]
    client_approved_by: Optional[str]
    client_approved_at: Optional[datetime]
    manager_signature: Optional[str]
    manager_approved_by: Optional[str]
    manager_approved_at: Optional[datetime]
    rejection_reason: Optional[str]
    rejected_by: Optional[str]
    rejected_at: Optional[datetime]


class PendingTimesheetRow(BaseModel):
    id: str
    shift_id: int
    status: str
    revision: int
    total_hours: Decimal
    submitted_by: Optional[str]
    submitted_at: Optional[datetime]
