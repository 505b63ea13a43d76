"""Per-assignment worker state machine.

    not_started --clock_in--> clocked_in --clock_out--> clocked_out
    clocked_out --clock_in--> clocked_in
    not_started / clocked_in / clocked_out --end_shift--> shift_ended (terminal)

Ending a worker who never clocked in (a no-show) records zero worked time.

Status is always recomputed from the time entries and ``shift_ended_at``;
nothing caches it. Mutations lock the assignment row first, and the ledger
closes entries with a conditional write, so of two racing clock_out calls on
one assignment the second fails even where the backend ignores row locks.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.authorization import Actor
from app.core.errors import InvalidState, NotFound, TerminalState, ValidationError, WorkflowError
from app.core.timeutils import as_utc, utcnow
from app.database import SessionLocal
from app.models.assigned_personnel import AssignedPersonnel
from app.models.shift import Shift
from app.models.time_entry import TimeEntry
from app.services import time_ledger
from app.services.outbox_events import WORKER_SHIFT_ENDED, enqueue_event
from app.services.permission_gate import Action, authorize

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    NOT_STARTED = "not_started"
    CLOCKED_IN = "clocked_in"
    CLOCKED_OUT = "clocked_out"
    SHIFT_ENDED = "shift_ended"


class WorkerAction(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    END_SHIFT = "end_shift"


TRANSITIONS = {
    (WorkerStatus.NOT_STARTED, WorkerAction.CLOCK_IN): WorkerStatus.CLOCKED_IN,
    (WorkerStatus.NOT_STARTED, WorkerAction.END_SHIFT): WorkerStatus.SHIFT_ENDED,
    (WorkerStatus.CLOCKED_IN, WorkerAction.CLOCK_OUT): WorkerStatus.CLOCKED_OUT,
    (WorkerStatus.CLOCKED_IN, WorkerAction.END_SHIFT): WorkerStatus.SHIFT_ENDED,
    (WorkerStatus.CLOCKED_OUT, WorkerAction.CLOCK_IN): WorkerStatus.CLOCKED_IN,
    (WorkerStatus.CLOCKED_OUT, WorkerAction.END_SHIFT): WorkerStatus.SHIFT_ENDED,
}


@dataclass
class WorkerSnapshot:
    assignment_id: int
    employee_id: str
    employee_name: Optional[str]
    role_code: str
    status: WorkerStatus
    worked_seconds: int
    entries: List[dict] = field(default_factory=list)


@dataclass
class BulkEndResult:
    shift_id: int
    ended: List[WorkerSnapshot] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)


def derive_status(assignment: AssignedPersonnel, entries: List[TimeEntry]) -> WorkerStatus:
    if assignment.shift_ended_at is not None:
        return WorkerStatus.SHIFT_ENDED
    if not entries:
        return WorkerStatus.NOT_STARTED
    if time_ledger.open_entry(entries) is not None:
        return WorkerStatus.CLOCKED_IN
    return WorkerStatus.CLOCKED_OUT


def serialize_entry(entry: TimeEntry) -> dict:
    return {
        "id": entry.id,
        "entry_number": entry.entry_number,
        "clock_in": as_utc(entry.clock_in),
        "clock_out": as_utc(entry.clock_out),
        "is_active": entry.clock_in is not None and entry.clock_out is None,
    }


def snapshot(assignment: AssignedPersonnel, entries: List[TimeEntry]) -> WorkerSnapshot:
    return WorkerSnapshot(
        assignment_id=assignment.id,
        employee_id=assignment.employee_id,
        employee_name=assignment.employee_name,
        role_code=assignment.role_code,
        status=derive_status(assignment, entries),
        worked_seconds=time_ledger.worked_seconds(entries),
        entries=[serialize_entry(e) for e in entries],
    )


def load_shift(db: Session, company_id: int, shift_id: int, *, for_update: bool = False) -> Shift:
    q = db.query(Shift).filter(Shift.id == int(shift_id), Shift.company_id == int(company_id))
    if for_update:
        q = q.with_for_update()
    shift = q.one_or_none()
    if shift is None:
        raise NotFound("Shift not found", shift_id=int(shift_id))
    return shift


def _lock_assignment(db: Session, shift: Shift, assignment_id: int) -> AssignedPersonnel:
    assignment = (
        db.query(AssignedPersonnel)
        .filter(
            AssignedPersonnel.id == int(assignment_id),
            AssignedPersonnel.shift_id == int(shift.id),
            AssignedPersonnel.company_id == int(shift.company_id),
        )
        .with_for_update()
        .one_or_none()
    )
    if assignment is None:
        raise NotFound("Assignment not found", assignment_id=int(assignment_id), shift_id=int(shift.id))
    return assignment


def _transition(
    db: Session,
    assignment: AssignedPersonnel,
    action: WorkerAction,
    now: datetime,
) -> WorkerSnapshot:
    entries = time_ledger.list_entries(db, assignment.id)
    current = derive_status(assignment, entries)

    if current is WorkerStatus.SHIFT_ENDED:
        if action is WorkerAction.END_SHIFT:
            return snapshot(assignment, entries)
        raise TerminalState(
            "Worker shift has already ended",
            assignment_id=assignment.id,
            status=current.value,
            action=action.value,
        )

    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidState(
            f"Cannot {action.value} while {current.value}",
            assignment_id=assignment.id,
            status=current.value,
            action=action.value,
        )

    if action is WorkerAction.CLOCK_IN:
        time_ledger.clock_in(db, assignment, now)
    elif action is WorkerAction.CLOCK_OUT:
        time_ledger.clock_out(db, assignment, now)
    else:
        if current is WorkerStatus.CLOCKED_IN:
            time_ledger.clock_out(db, assignment, now)
        assignment.shift_ended_at = as_utc(now)
        db.flush()
        enqueue_event(
            db,
            company_id=assignment.company_id,
            event_type=WORKER_SHIFT_ENDED,
            idempotency_key=f"assignment:{assignment.id}:shift_ended",
            payload={
                "assignment_id": assignment.id,
                "shift_id": assignment.shift_id,
                "employee_id": assignment.employee_id,
            },
        )

    entries = time_ledger.list_entries(db, assignment.id)
    result = snapshot(assignment, entries)
    if result.status is not target:
        raise InvalidState(
            "Worker state did not reach the expected status",
            assignment_id=assignment.id,
            status=result.status.value,
            expected=target.value,
        )

    logger.info(
        "Worker state transition",
        extra={
            "assignment_id": assignment.id,
            "shift_id": assignment.shift_id,
            "action": action.value,
            "from_status": current.value,
            "to_status": target.value,
        },
    )
    return result


def apply_action(
    company_id: int,
    shift_id: int,
    assignment_id: int,
    action: WorkerAction,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> WorkerSnapshot:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    if now is None:
        now = utcnow()

    try:
        shift = load_shift(db, company_id, shift_id)
        authorize(db, actor, Action.CLOCK, shift)

        assignment = _lock_assignment(db, shift, assignment_id)
        result = _transition(db, assignment, WorkerAction(action), now)

        if owns_db:
            db.commit()

        return result
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def clock_action(
    company_id: int,
    shift_id: int,
    assignment_id: int,
    action: str,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> WorkerSnapshot:
    if action not in (WorkerAction.CLOCK_IN.value, WorkerAction.CLOCK_OUT.value):
        raise ValidationError("Invalid action. Must be clock_in or clock_out", action=action)

    return apply_action(
        company_id,
        shift_id,
        assignment_id,
        WorkerAction(action),
        actor,
        now=now,
        db=db,
    )


def end_shift(
    company_id: int,
    shift_id: int,
    assignment_id: int,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> WorkerSnapshot:
    return apply_action(
        company_id,
        shift_id,
        assignment_id,
        WorkerAction.END_SHIFT,
        actor,
        now=now,
        db=db,
    )


def end_all_shifts(
    company_id: int,
    shift_id: int,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> BulkEndResult:
    """End every non-terminal worker on a shift, no-shows included.

    Unlike the single-worker operations, this ALWAYS commits, also on a
    caller-provided db: each worker is its own transaction, so a failure is
    reported for that worker only and never undoes the others. Work pending
    on a caller's session is committed before the first worker. If db is None,
    this function also opens and closes the session.
    Permission failures for the whole shift are raised before any work.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    if now is None:
        now = utcnow()

    try:
        shift = load_shift(db, company_id, shift_id)
        authorize(db, actor, Action.CLOCK, shift)

        assignment_ids = [
            row.id
            for row in db.query(AssignedPersonnel.id)
            .filter(
                AssignedPersonnel.shift_id == int(shift.id),
                AssignedPersonnel.company_id == int(shift.company_id),
                AssignedPersonnel.shift_ended_at.is_(None),
            )
            .order_by(AssignedPersonnel.id.asc())
            .all()
        ]
        db.commit()

        result = BulkEndResult(shift_id=int(shift.id))
        for assignment_id in assignment_ids:
            try:
                assignment = _lock_assignment(db, shift, assignment_id)
                result.ended.append(_transition(db, assignment, WorkerAction.END_SHIFT, now))
                db.commit()
            except WorkflowError as exc:
                db.rollback()
                result.failed.append({"assignment_id": assignment_id, **exc.to_dict()})

        logger.info(
            "End all shifts",
            extra={
                "shift_id": shift.id,
                "ended": len(result.ended),
                "failed": len(result.failed),
            },
        )
        return result
    except Exception:
        db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
