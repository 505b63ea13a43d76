from datetime import timedelta

from app.database import SessionLocal
from app.models.event_outbox import EventOutbox
from app.services.outbox_processor import _retry_wait, process_outbox_batch


def test_retry_wait_backs_off_exponentially_and_caps():
    assert _retry_wait(0) == timedelta(0)
    assert _retry_wait(1) == timedelta(seconds=2)
    assert _retry_wait(3) == timedelta(seconds=8)
    assert _retry_wait(10) == timedelta(seconds=60)


def test_rejected_notification_retries_until_mail_goes_out():
    attempts = []

    def flaky_handler(row: EventOutbox, _db):
        attempts.append(row.id)
        if len(attempts) == 1:
            raise ConnectionError("smtp unavailable")

    handlers = {"TIMESHEET_REJECTED": flaky_handler}

    db = SessionLocal()
    try:
        row = EventOutbox(
            company_id=1,
            event_type="TIMESHEET_REJECTED",
            idempotency_key="timesheet:ts-9:rev:1:rejected",
            payload={"timesheet_id": "ts-9", "reason": "Break missing"},
            processed=False,
            retry_count=0,
        )
        db.add(row)
        db.commit()
        db.refresh(row)

        # 'now' must not precede created_at or the row is never due.
        t1 = row.created_at + timedelta(seconds=1)

        r1 = process_outbox_batch(db=db, now=t1, batch_size=10, handlers=handlers)
        db.refresh(row)
        assert (r1.processed, r1.failed) == (0, 1)
        assert row.retry_count == 1
        assert row.last_error == "ConnectionError: smtp unavailable"

        # Inside the 2s backoff window nothing is attempted.
        r2 = process_outbox_batch(db=db, now=t1, batch_size=10, handlers=handlers)
        assert (r2.processed, r2.failed) == (0, 0)
        assert len(attempts) == 1

        t2 = row.created_at + timedelta(seconds=3)
        r3 = process_outbox_batch(db=db, now=t2, batch_size=10, handlers=handlers)
        db.refresh(row)
        assert (r3.processed, r3.failed) == (1, 0)
        assert row.processed is True
        assert row.last_error is None
        assert row.retry_count == 1
    finally:
        db.rollback()
        db.close()
