from app.models.assigned_personnel import AssignedPersonnel
from app.models.client import Client
from app.models.crew_chief_permission import CrewChiefPermission
from app.models.event_outbox import EventOutbox
from app.models.job import Job
from app.models.shift import Shift
from app.models.signature import Signature
from app.models.time_entry import TimeEntry
from app.models.timesheet import Timesheet

__all__ = [
    "AssignedPersonnel",
    "Client",
    "CrewChiefPermission",
    "EventOutbox",
    "Job",
    "Shift",
    "Signature",
    "TimeEntry",
    "Timesheet",
]
