from app.database import SessionLocal
from app.models.event_outbox import EventOutbox
from app.services import outbox_worker


def test_worker_disabled_under_pytest():
    assert outbox_worker.outbox_worker_enabled() is False
    assert outbox_worker.start_outbox_worker_task() is None


def test_env_int_falls_back_on_garbage(monkeypatch):
    monkeypatch.setenv("OUTBOX_BATCH_SIZE", "lots")
    assert outbox_worker._env_int("OUTBOX_BATCH_SIZE", 50) == 50
    monkeypatch.setenv("OUTBOX_BATCH_SIZE", "7")
    assert outbox_worker._env_int("OUTBOX_BATCH_SIZE", 50) == 7


def test_run_tick_processes_pending_rows():
    seed = SessionLocal()
    try:
        seed.add(
            EventOutbox(
                company_id=1,
                event_type="WORKER_SHIFT_ENDED",
                idempotency_key="assignment:1:shift_ended",
                payload={"assignment_id": 1},
            )
        )
        seed.commit()
    finally:
        seed.close()

    outbox_worker._run_tick(batch_size=10)

    db = SessionLocal()
    try:
        row = db.query(EventOutbox).one()
        assert row.processed is True
        assert row.retry_count == 0
    finally:
        db.close()
