from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel


class ClockActionRequest(BaseModel):
    action: Literal["clock_in", "clock_out"]


class TimeEntryOut(BaseModel):
    id: int
    entry_number: int
    clock_in: Optional[datetime]
    clock_out: Optional[datetime]
    is_active: bool


class WorkerStatusOut(BaseModel):
    assignment_id: int
    employee_id: str
    employee_name: Optional[str]
    role_code: str
    status: str
    worked_seconds: int
    entries: List[TimeEntryOut]


class WorkerFailureOut(BaseModel):
    assignment_id: int
    code: str
    message: str


class EndAllShiftsResponse(BaseModel):
    shift_id: int
    ended: List[WorkerStatusOut]
    failed: List[WorkerFailureOut]


class ShiftStatusResponse(BaseModel):
    shift_id: int
    requested_workers: int
    assigned_count: int
    counts: Dict[str, int]
    completion_percentage: float
    is_complete: bool
    is_fully_staffed: bool
    total_seconds: int
    total_hours: Decimal
    workers: List[WorkerStatusOut]


class FinalizeTimesheetResponse(BaseModel):
    timesheet_id: str
    shift_id: int
    status: str
    revision: int
    total_hours: Decimal
