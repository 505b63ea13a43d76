import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.models.event_outbox import EventOutbox

logger = logging.getLogger(__name__)

WORKER_SHIFT_ENDED = "WORKER_SHIFT_ENDED"
TIMESHEET_SUBMITTED = "TIMESHEET_SUBMITTED"
TIMESHEET_CLIENT_APPROVED = "TIMESHEET_CLIENT_APPROVED"
TIMESHEET_COMPLETED = "TIMESHEET_COMPLETED"
TIMESHEET_REJECTED = "TIMESHEET_REJECTED"


def enqueue_event(
    db: Session,
    *,
    company_id: int,
    event_type: str,
    idempotency_key: str,
    payload: Dict[str, Any],
) -> EventOutbox:
    """Add an outbox row inside the caller's transaction.

    The row commits or rolls back together with the state change that
    produced it. An existing row with the same idempotency key is returned
    unchanged.
    """
    existing = (
        db.query(EventOutbox)
        .filter(
            EventOutbox.company_id == int(company_id),
            EventOutbox.event_type == str(event_type),
            EventOutbox.idempotency_key == str(idempotency_key),
        )
        .one_or_none()
    )
    if existing is not None:
        return existing

    row = EventOutbox(
        company_id=int(company_id),
        event_type=str(event_type),
        idempotency_key=str(idempotency_key),
        payload=payload,
        processed=False,
        retry_count=0,
    )
    db.add(row)
    db.flush()

    logger.debug(
        "Outbox event enqueued",
        extra={"event_type": event_type, "idempotency_key": idempotency_key},
    )
    return row
