import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.assigned_personnel import AssignedPersonnel
from app.models.client import Client
from app.models.event_outbox import EventOutbox
from app.models.job import Job
from app.models.shift import Shift
from app.models.timesheet import Timesheet
from app.services import notifications
from app.services.shift_aggregator import summarize_shift

logger = logging.getLogger(__name__)


def _payload(row: EventOutbox) -> dict:
    payload: Any = row.payload or {}
    return payload if isinstance(payload, dict) else {}


def _client_contact_email(db: Session, row: EventOutbox, shift_id) -> Optional[str]:
    if shift_id is None:
        return None
    client = (
        db.query(Client)
        .join(Job, Job.client_id == Client.id)
        .join(Shift, Shift.job_id == Job.id)
        .filter(Shift.id == int(shift_id), Shift.company_id == int(row.company_id))
        .one_or_none()
    )
    return None if client is None else client.contact_email


def handle_worker_shift_ended(row: EventOutbox, db: Session) -> None:
    """Tell managers a shift is ready to finalize once its last worker has ended.

    Only the event of the most recently ended worker sends, so ending a whole
    crew produces one email.
    """
    payload = _payload(row)
    shift = (
        db.query(Shift)
        .filter(Shift.id == int(payload.get("shift_id") or 0), Shift.company_id == int(row.company_id))
        .one_or_none()
    )
    if shift is None:
        logger.info("WORKER_SHIFT_ENDED for unknown shift; skipping", extra={"event_outbox_id": row.id})
        return

    if not summarize_shift(db, shift).is_complete:
        return

    last_ended = (
        db.query(AssignedPersonnel)
        .filter(AssignedPersonnel.shift_id == shift.id, AssignedPersonnel.company_id == shift.company_id)
        .order_by(AssignedPersonnel.shift_ended_at.desc(), AssignedPersonnel.id.desc())
        .first()
    )
    if last_ended is None or last_ended.id != payload.get("assignment_id"):
        return

    already_finalized = db.query(Timesheet.id).filter(Timesheet.shift_id == shift.id).first() is not None
    if already_finalized:
        return

    notifications.send_email(
        notifications.manager_recipients(),
        "Shift ready for timesheet",
        f"All workers on shift {shift.id} have ended their shifts. "
        "The timesheet can now be finalized.",
    )


def handle_timesheet_submitted(row: EventOutbox, db: Session) -> None:
    payload = _payload(row)
    contact = _client_contact_email(db, row, payload.get("shift_id"))
    notifications.send_email(
        [contact],
        "Timesheet ready for your approval",
        f"The timesheet for shift {payload.get('shift_id')} "
        f"({payload.get('total_hours')} hours) is awaiting your signature.",
    )


def handle_timesheet_client_approved(row: EventOutbox, db: Session) -> None:
    payload = _payload(row)
    notifications.send_email(
        notifications.manager_recipients(),
        "Timesheet Ready for Final Approval",
        f"Timesheet {payload.get('timesheet_id')} has been approved by the client "
        "and is ready for final approval.",
    )


def handle_timesheet_completed(row: EventOutbox, db: Session) -> None:
    payload = _payload(row)
    contact = _client_contact_email(db, row, payload.get("shift_id"))
    notifications.send_email(
        [contact, *notifications.manager_recipients()],
        "Timesheet completed",
        f"Timesheet {payload.get('timesheet_id')} for shift {payload.get('shift_id')} is completed.",
    )


def handle_timesheet_rejected(row: EventOutbox, db: Session) -> None:
    payload = _payload(row)
    if not payload.get("timesheet_id"):
        logger.info(
            "TIMESHEET_REJECTED missing timesheet_id; skipping",
            extra={"event_outbox_id": row.id},
        )
        return

    notifications.send_email(
        notifications.manager_recipients(),
        "Timesheet rejected",
        f"Timesheet {payload.get('timesheet_id')} was rejected: {payload.get('reason')}. "
        f"It has been returned to {payload.get('submitted_by')} for correction.",
    )
