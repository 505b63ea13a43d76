from __future__ import annotations

from fastapi.testclient import TestClient

from app.database import SessionLocal
from app.main import app
from app.models.event_outbox import EventOutbox

client = TestClient(app)


def _auth_headers(company_id: int) -> dict:
    r = client.post("/auth/token", json={"user_id": "test", "company_id": company_id})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    return {"X-Company-Id": str(company_id), "Authorization": f"Bearer {token}"}


def _end_one_worker(company_id: int, shift_factory, assignment_factory) -> int:
    headers = _auth_headers(company_id)
    shift = shift_factory(company_id=company_id)
    a = assignment_factory(shift, f"emp-{company_id}")

    r_in = client.post(
        f"/shifts/{shift.id}/assigned/{a.id}/clock",
        json={"action": "clock_in"},
        headers=headers,
    )
    assert r_in.status_code == 200, r_in.text

    r_end = client.post(f"/shifts/{shift.id}/assigned/{a.id}/end-shift", headers=headers)
    assert r_end.status_code == 200, r_end.text
    assert r_end.json()["status"] == "shift_ended"
    return a.id


def test_end_shift_creates_outbox_event(shift_factory, assignment_factory):
    assignment_id = _end_one_worker(1, shift_factory, assignment_factory)

    db = SessionLocal()
    try:
        rows = (
            db.query(EventOutbox)
            .filter(
                EventOutbox.company_id == 1,
                EventOutbox.event_type == "WORKER_SHIFT_ENDED",
                EventOutbox.idempotency_key == f"assignment:{assignment_id}:shift_ended",
            )
            .all()
        )
        assert len(rows) == 1
        assert rows[0].payload["assignment_id"] == assignment_id
        assert rows[0].processed is False
    finally:
        db.close()


def test_outbox_is_tenant_scoped(shift_factory, assignment_factory):
    a1 = _end_one_worker(1, shift_factory, assignment_factory)
    a2 = _end_one_worker(2, shift_factory, assignment_factory)

    r1 = client.get("/outbox", headers=_auth_headers(1))
    assert r1.status_code == 200, r1.text
    keys1 = [row["idempotency_key"] for row in r1.json()["rows"]]
    assert keys1 == [f"assignment:{a1}:shift_ended"]

    r2 = client.get("/outbox", params={"event_type": "WORKER_SHIFT_ENDED"}, headers=_auth_headers(2))
    assert r2.status_code == 200, r2.text
    assert [row["company_id"] for row in r2.json()["rows"]] == [2]
    assert r2.json()["rows"][0]["idempotency_key"] == f"assignment:{a2}:shift_ended"


def test_failed_transition_leaves_no_event(shift_factory, assignment_factory):
    headers = _auth_headers(1)
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    r = client.post(f"/shifts/{shift.id}/assigned/{a.id}/clock", json={"action": "clock_out"}, headers=headers)
    assert r.status_code == 409, r.text
    assert r.json()["detail"]["code"] == "invalid_state"

    db = SessionLocal()
    try:
        assert db.query(EventOutbox).count() == 0
    finally:
        db.close()

