"""Timesheet approval workflow.

    (none) --finalize--> pending_client_approval
    pending_client_approval --approve(client)--> pending_final_approval
    pending_final_approval --approve(manager)--> completed
    pending_* --reject--> rejected --finalize (resubmit)--> pending_client_approval

Every transition writes status, signature and timestamp in one flush inside
the caller's transaction, together with its outbox event. The shift row is
locked on finalize and the timesheet row on approve/reject, so at most one
mutation per shift/timesheet is in flight.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.authorization import Actor, Role
from app.core.errors import InvalidState, NotFound, PermissionDenied, TerminalState, ValidationError
from app.core.timeutils import as_utc, utcnow
from app.database import SessionLocal
from app.models.job import Job
from app.models.shift import Shift
from app.models.signature import Signature
from app.models.timesheet import Timesheet
from app.services import signature_store
from app.services.outbox_events import (
    TIMESHEET_CLIENT_APPROVED,
    TIMESHEET_COMPLETED,
    TIMESHEET_REJECTED,
    TIMESHEET_SUBMITTED,
    enqueue_event,
)
from app.services.permission_gate import Action, authorize
from app.services.shift_aggregator import ShiftSummary, require_complete, summarize_shift
from app.services.worker_state import load_shift

logger = logging.getLogger(__name__)

PENDING_CLIENT_APPROVAL = "pending_client_approval"
PENDING_FINAL_APPROVAL = "pending_final_approval"
COMPLETED = "completed"
REJECTED = "rejected"

APPROVAL_TYPES = ("client", "manager")


def _load_timesheet(db: Session, company_id: int, timesheet_id: str, *, for_update: bool = False) -> Timesheet:
    q = db.query(Timesheet).filter(
        Timesheet.id == str(timesheet_id),
        Timesheet.company_id == int(company_id),
    )
    if for_update:
        q = q.with_for_update()
    timesheet = q.one_or_none()
    if timesheet is None:
        raise NotFound("Timesheet not found", timesheet_id=str(timesheet_id))
    return timesheet


def _frozen_worker_totals(summary: ShiftSummary) -> List[dict]:
    return [
        {
            "assignment_id": w.assignment_id,
            "employee_id": w.employee_id,
            "employee_name": w.employee_name,
            "role_code": w.role_code,
            "worked_seconds": w.worked_seconds,
            "entries": [
                {
                    "entry_number": e["entry_number"],
                    "clock_in": None if e["clock_in"] is None else e["clock_in"].isoformat(),
                    "clock_out": None if e["clock_out"] is None else e["clock_out"].isoformat(),
                }
                for e in w.entries
            ],
        }
        for w in summary.workers
    ]


def _event_payload(timesheet: Timesheet, actor: Actor, **extra) -> dict:
    payload = {
        "timesheet_id": timesheet.id,
        "shift_id": timesheet.shift_id,
        "status": timesheet.status,
        "revision": int(timesheet.revision),
        "actor_user_id": actor.user_id,
    }
    payload.update(extra)
    return payload


def _log_transition(timesheet: Timesheet, actor: Actor, from_status: Optional[str]) -> None:
    logger.info(
        "Timesheet state transition",
        extra={
            "timesheet_id": timesheet.id,
            "shift_id": timesheet.shift_id,
            "from_status": from_status,
            "to_status": timesheet.status,
            "revision": int(timesheet.revision),
            "user_id": actor.user_id,
            "role": actor.role.value,
        },
    )


def _reject_terminal(timesheet: Timesheet, action: str) -> None:
    if timesheet.status in (COMPLETED, REJECTED):
        raise TerminalState(
            f"Timesheet is {timesheet.status}",
            timesheet_id=timesheet.id,
            status=timesheet.status,
            action=action,
        )


def finalize_timesheet(
    company_id: int,
    shift_id: int,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> Timesheet:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = as_utc(now or utcnow())

    try:
        shift = load_shift(db, company_id, shift_id, for_update=True)
        authorize(db, actor, Action.FINALIZE, shift)

        timesheet = (
            db.query(Timesheet)
            .filter(Timesheet.shift_id == int(shift.id), Timesheet.company_id == int(company_id))
            .with_for_update()
            .one_or_none()
        )
        if timesheet is not None and timesheet.status == COMPLETED:
            raise TerminalState(
                "Timesheet is already completed",
                timesheet_id=timesheet.id,
                status=timesheet.status,
            )
        if timesheet is not None and timesheet.status != REJECTED:
            raise InvalidState(
                "Timesheet has already been finalized",
                timesheet_id=timesheet.id,
                status=timesheet.status,
            )

        summary = summarize_shift(db, shift)
        require_complete(summary)

        from_status = None
        if timesheet is None:
            timesheet = Timesheet(
                company_id=int(company_id),
                shift_id=int(shift.id),
                revision=1,
            )
            db.add(timesheet)
        else:
            from_status = timesheet.status
            timesheet.revision = int(timesheet.revision) + 1
            timesheet.client_signature_id = None
            timesheet.client_approved_by = None
            timesheet.client_approved_at = None
            timesheet.manager_signature_id = None
            timesheet.manager_approved_by = None
            timesheet.manager_approved_at = None
            timesheet.rejection_reason = None
            timesheet.rejected_by = None
            timesheet.rejected_at = None

        timesheet.status = PENDING_CLIENT_APPROVAL
        timesheet.total_seconds = summary.total_seconds
        timesheet.total_hours = summary.total_hours
        timesheet.worker_totals = _frozen_worker_totals(summary)
        timesheet.submitted_by = actor.user_id
        timesheet.submitted_at = now
        db.flush()

        enqueue_event(
            db,
            company_id=company_id,
            event_type=TIMESHEET_SUBMITTED,
            idempotency_key=f"timesheet:{timesheet.id}:rev:{timesheet.revision}:submitted",
            payload=_event_payload(timesheet, actor, total_hours=str(timesheet.total_hours)),
        )
        _log_transition(timesheet, actor, from_status)

        if owns_db:
            db.commit()

        return timesheet
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def approve_timesheet(
    company_id: int,
    timesheet_id: str,
    approval_type: str,
    signature: Optional[str],
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> Timesheet:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    if approval_type not in APPROVAL_TYPES:
        raise ValidationError("Invalid approval type", field="approval_type", approval_type=approval_type)

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = as_utc(now or utcnow())

    try:
        timesheet = _load_timesheet(db, company_id, timesheet_id, for_update=True)
        shift = load_shift(db, company_id, timesheet.shift_id)
        action = Action.APPROVE_CLIENT if approval_type == "client" else Action.APPROVE_MANAGER
        authorize(db, actor, action, shift, timesheet)
        _reject_terminal(timesheet, f"approve_{approval_type}")

        from_status = timesheet.status

        if approval_type == "client":
            if timesheet.status != PENDING_CLIENT_APPROVAL:
                raise InvalidState(
                    "Timesheet is not pending client approval",
                    timesheet_id=timesheet.id,
                    status=timesheet.status,
                )

            sig = signature_store.save_signature(
                db, company_id=company_id, value=signature, created_by=actor.user_id
            )
            timesheet.status = PENDING_FINAL_APPROVAL
            timesheet.client_signature_id = sig.id
            timesheet.client_approved_by = actor.user_id
            timesheet.client_approved_at = now
            event_type = TIMESHEET_CLIENT_APPROVED
        else:
            if timesheet.status != PENDING_FINAL_APPROVAL:
                raise InvalidState(
                    "Timesheet is not pending final approval",
                    timesheet_id=timesheet.id,
                    status=timesheet.status,
                )
            if timesheet.client_signature_id is None or timesheet.client_approved_at is None:
                raise InvalidState(
                    "Client signature is required before final approval",
                    timesheet_id=timesheet.id,
                    status=timesheet.status,
                )

            sig = signature_store.save_signature(
                db, company_id=company_id, value=signature, created_by=actor.user_id
            )
            timesheet.status = COMPLETED
            timesheet.manager_signature_id = sig.id
            timesheet.manager_approved_by = actor.user_id
            timesheet.manager_approved_at = now
            event_type = TIMESHEET_COMPLETED

        db.flush()

        enqueue_event(
            db,
            company_id=company_id,
            event_type=event_type,
            idempotency_key=f"timesheet:{timesheet.id}:rev:{timesheet.revision}:{approval_type}_approved",
            payload=_event_payload(timesheet, actor, approval_type=approval_type),
        )
        _log_transition(timesheet, actor, from_status)

        if owns_db:
            db.commit()

        return timesheet
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def reject_timesheet(
    company_id: int,
    timesheet_id: str,
    reason: Optional[str],
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> Timesheet:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = as_utc(now or utcnow())

    try:
        timesheet = _load_timesheet(db, company_id, timesheet_id, for_update=True)
        shift = load_shift(db, company_id, timesheet.shift_id)
        authorize(db, actor, Action.REJECT, shift, timesheet)
        _reject_terminal(timesheet, "reject")
        if actor.role is Role.CLIENT and timesheet.status != PENDING_CLIENT_APPROVAL:
            raise PermissionDenied(
                "Clients may only reject timesheets pending client approval",
                action=Action.REJECT.value,
                timesheet_id=timesheet.id,
            )

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required", field="reason")

        from_status = timesheet.status
        timesheet.status = REJECTED
        timesheet.rejection_reason = reason
        timesheet.rejected_by = actor.user_id
        timesheet.rejected_at = now
        db.flush()

        enqueue_event(
            db,
            company_id=company_id,
            event_type=TIMESHEET_REJECTED,
            idempotency_key=f"timesheet:{timesheet.id}:rev:{timesheet.revision}:rejected",
            payload=_event_payload(timesheet, actor, reason=reason, submitted_by=timesheet.submitted_by),
        )
        _log_transition(timesheet, actor, from_status)

        if owns_db:
            db.commit()

        return timesheet
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def _signature(db: Session, timesheet: Timesheet, signature_id: Optional[str]) -> Optional[Signature]:
    if signature_id is None:
        return None
    return signature_store.load_signature(db, company_id=timesheet.company_id, signature_id=signature_id)


def serialize_timesheet(db: Session, timesheet: Timesheet) -> dict:
    return {
        "id": timesheet.id,
        "company_id": timesheet.company_id,
        "shift_id": timesheet.shift_id,
        "status": timesheet.status,
        "revision": int(timesheet.revision),
        "total_seconds": int(timesheet.total_seconds or 0),
        "total_hours": timesheet.total_hours,
        "worker_totals": timesheet.worker_totals or [],
        "submitted_by": timesheet.submitted_by,
        "submitted_at": as_utc(timesheet.submitted_at),
        "client_signature": signature_store.to_data_url(_signature(db, timesheet, timesheet.client_signature_id)),
        "client_approved_by": timesheet.client_approved_by,
        "client_approved_at": as_utc(timesheet.client_approved_at),
        "manager_signature": signature_store.to_data_url(_signature(db, timesheet, timesheet.manager_signature_id)),
        "manager_approved_by": timesheet.manager_approved_by,
        "manager_approved_at": as_utc(timesheet.manager_approved_at),
        "rejection_reason": timesheet.rejection_reason,
        "rejected_by": timesheet.rejected_by,
        "rejected_at": as_utc(timesheet.rejected_at),
    }


def get_timesheet(company_id: int, timesheet_id: str, actor: Actor, *, db: Session) -> dict:
    timesheet = _load_timesheet(db, company_id, timesheet_id)
    shift = load_shift(db, company_id, timesheet.shift_id)
    authorize(db, actor, Action.VIEW, shift, timesheet)
    return serialize_timesheet(db, timesheet)


def list_pending(company_id: int, actor: Actor, *, db: Session) -> List[Timesheet]:
    q = db.query(Timesheet).filter(Timesheet.company_id == int(company_id))

    if actor.role is Role.MANAGER:
        q = q.filter(Timesheet.status.in_((PENDING_CLIENT_APPROVAL, PENDING_FINAL_APPROVAL)))
    elif actor.role is Role.CLIENT:
        q = (
            q.join(Shift, Shift.id == Timesheet.shift_id)
            .join(Job, Job.id == Shift.job_id)
            .filter(Job.client_id == int(actor.client_id))
            .filter(Timesheet.status == PENDING_CLIENT_APPROVAL)
        )
    else:
        return []

    return q.order_by(Timesheet.submitted_at.asc(), Timesheet.id.asc()).all()
