"""Append-only ledger of clock-in / clock-out pairs per worker assignment.

Entries are numbered 1..MAX_TIME_ENTRIES_PER_ASSIGNMENT without gaps and are
never deleted. These functions never commit: the caller owns the transaction
and is expected to hold the assignment row lock.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import InvalidState
from app.core.timeutils import as_utc
from app.models.assigned_personnel import AssignedPersonnel
from app.models.time_entry import TimeEntry

MAX_TIME_ENTRIES_PER_ASSIGNMENT = 3


def list_entries(db: Session, assignment_id: int) -> List[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(TimeEntry.assigned_personnel_id == int(assignment_id))
        .order_by(TimeEntry.entry_number.asc())
        .all()
    )


def open_entry(entries: Iterable[TimeEntry]) -> Optional[TimeEntry]:
    latest = None
    for entry in entries:
        if latest is None or entry.entry_number > latest.entry_number:
            latest = entry
    if latest is not None and latest.clock_in is not None and latest.clock_out is None:
        return latest
    return None


def clock_in(db: Session, assignment: AssignedPersonnel, now: datetime) -> TimeEntry:
    entries = list_entries(db, assignment.id)

    if open_entry(entries) is not None:
        raise InvalidState(
            "Worker is already clocked in",
            assignment_id=assignment.id,
        )

    if len(entries) >= MAX_TIME_ENTRIES_PER_ASSIGNMENT:
        raise InvalidState(
            f"All {MAX_TIME_ENTRIES_PER_ASSIGNMENT} time entry slots are used",
            assignment_id=assignment.id,
        )

    entry = TimeEntry(
        company_id=assignment.company_id,
        assigned_personnel_id=assignment.id,
        entry_number=len(entries) + 1,
        clock_in=as_utc(now),
        clock_out=None,
    )
    db.add(entry)
    db.flush()
    return entry


def clock_out(db: Session, assignment: AssignedPersonnel, now: datetime) -> TimeEntry:
    entry = open_entry(list_entries(db, assignment.id))
    if entry is None:
        raise InvalidState(
            "No active time entry found to clock out",
            assignment_id=assignment.id,
        )

    now = as_utc(now)
    if now < as_utc(entry.clock_in):
        raise InvalidState(
            "Clock out time precedes clock in time",
            assignment_id=assignment.id,
            entry_number=entry.entry_number,
        )

    # Only an entry that is still open may be closed; a concurrent clock_out
    # that committed first leaves nothing to update.
    closed = (
        db.query(TimeEntry)
        .filter(TimeEntry.id == entry.id, TimeEntry.clock_out.is_(None))
        .update({TimeEntry.clock_out: now}, synchronize_session=False)
    )
    if closed != 1:
        raise InvalidState(
            "Time entry was already clocked out",
            assignment_id=assignment.id,
            entry_number=entry.entry_number,
        )

    db.refresh(entry)
    return entry


def entry_seconds(entry: TimeEntry) -> int:
    # Open entries contribute nothing until closed.
    if entry.clock_in is None or entry.clock_out is None:
        return 0
    delta = as_utc(entry.clock_out) - as_utc(entry.clock_in)
    return max(0, int(delta.total_seconds()))


def worked_seconds(entries: Iterable[TimeEntry]) -> int:
    return sum(entry_seconds(e) for e in entries)


def seconds_to_hours(seconds: int) -> Decimal:
    return (Decimal(int(seconds)) / Decimal(3600)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
