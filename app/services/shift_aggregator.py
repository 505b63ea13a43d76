"""On-demand roll-up of worker states and hours for one shift.

Nothing here is stored: every call re-derives from assignments and the time
entry ledger, without locks. Readers may be stale; mutating paths re-validate.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import IncompleteShift
from app.models.assigned_personnel import AssignedPersonnel
from app.models.shift import Shift
from app.models.time_entry import TimeEntry
from app.services import time_ledger
from app.services.worker_state import WorkerSnapshot, WorkerStatus, snapshot


@dataclass
class ShiftSummary:
    shift_id: int
    requested_workers: int
    workers: List[WorkerSnapshot] = field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return len(self.workers)

    @property
    def counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in WorkerStatus}
        for w in self.workers:
            counts[w.status.value] += 1
        return counts

    @property
    def completion_percentage(self) -> float:
        # Matches is_complete, which is vacuously true with nobody assigned.
        if not self.workers:
            return 100.0
        ended = self.counts[WorkerStatus.SHIFT_ENDED.value]
        return round(100.0 * ended / self.assigned_count, 2)

    @property
    def is_complete(self) -> bool:
        # Vacuously true for a shift with nobody assigned.
        return all(w.status is WorkerStatus.SHIFT_ENDED for w in self.workers)

    @property
    def is_fully_staffed(self) -> bool:
        return self.assigned_count >= int(self.requested_workers or 0)

    @property
    def total_seconds(self) -> int:
        return sum(w.worked_seconds for w in self.workers)

    @property
    def total_hours(self) -> Decimal:
        return time_ledger.seconds_to_hours(self.total_seconds)

    @property
    def active_workers(self) -> List[WorkerSnapshot]:
        return [w for w in self.workers if w.status is not WorkerStatus.SHIFT_ENDED]


def summarize_shift(db: Session, shift: Shift) -> ShiftSummary:
    assignments = (
        db.query(AssignedPersonnel)
        .filter(
            AssignedPersonnel.shift_id == int(shift.id),
            AssignedPersonnel.company_id == int(shift.company_id),
        )
        .order_by(AssignedPersonnel.id.asc())
        .all()
    )

    entries_by_assignment: Dict[int, List[TimeEntry]] = {a.id: [] for a in assignments}
    if assignments:
        rows = (
            db.query(TimeEntry)
            .filter(TimeEntry.assigned_personnel_id.in_(list(entries_by_assignment)))
            .order_by(TimeEntry.assigned_personnel_id.asc(), TimeEntry.entry_number.asc())
            .all()
        )
        for row in rows:
            entries_by_assignment[row.assigned_personnel_id].append(row)

    return ShiftSummary(
        shift_id=int(shift.id),
        requested_workers=int(shift.requested_workers or 0),
        workers=[snapshot(a, entries_by_assignment[a.id]) for a in assignments],
    )


def require_complete(summary: ShiftSummary, *, message: Optional[str] = None) -> None:
    """Finalization precondition: every assigned worker has ended their shift."""
    blocking = summary.active_workers
    if not summary.workers:
        raise IncompleteShift(
            message or "Cannot finalize timesheet. No workers are assigned to this shift.",
            active_workers=[],
        )
    if blocking:
        raise IncompleteShift(
            message
            or f"Cannot finalize timesheet. {len(blocking)} workers have not ended their shifts yet.",
            active_workers=[
                {
                    "assignment_id": w.assignment_id,
                    "employee_id": w.employee_id,
                    "employee_name": w.employee_name,
                    "status": w.status.value,
                }
                for w in blocking
            ],
        )
