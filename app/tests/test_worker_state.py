from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import InvalidState, NotFound, TerminalState, ValidationError
from app.core.timeutils import as_utc
from app.database import SessionLocal
from app.models.assigned_personnel import AssignedPersonnel
from app.models.event_outbox import EventOutbox
from app.services import time_ledger, worker_state
from app.services.worker_state import WorkerStatus

T0 = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


def _clock(manager, shift, assignment, action, at):
    return worker_state.clock_action(
        company_id=shift.company_id,
        shift_id=shift.id,
        assignment_id=assignment.id,
        action=action,
        actor=manager,
        now=at,
    )


def _end(manager, shift, assignment, at):
    return worker_state.end_shift(
        company_id=shift.company_id,
        shift_id=shift.id,
        assignment_id=assignment.id,
        actor=manager,
        now=at,
    )


def test_worker_walks_through_every_status(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1", "Dana Reyes")

    w = _clock(manager, shift, a, "clock_in", T0)
    assert w.status is WorkerStatus.CLOCKED_IN
    assert w.entries[0]["is_active"] is True

    w = _clock(manager, shift, a, "clock_out", T0 + timedelta(hours=2))
    assert w.status is WorkerStatus.CLOCKED_OUT

    w = _clock(manager, shift, a, "clock_in", T0 + timedelta(hours=3))
    assert w.status is WorkerStatus.CLOCKED_IN

    w = _end(manager, shift, a, T0 + timedelta(hours=5))
    assert w.status is WorkerStatus.SHIFT_ENDED
    assert w.worked_seconds == 4 * 3600
    assert all(e["clock_out"] is not None for e in w.entries)
    assert w.entries[-1]["clock_out"] == T0 + timedelta(hours=5)


def test_end_shift_from_clocked_out_keeps_entries(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    _clock(manager, shift, a, "clock_in", T0)
    _clock(manager, shift, a, "clock_out", T0 + timedelta(hours=1))
    w = _end(manager, shift, a, T0 + timedelta(hours=6))

    assert w.status is WorkerStatus.SHIFT_ENDED
    assert w.worked_seconds == 3600
    assert len(w.entries) == 1


def test_end_shift_is_idempotent(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    _clock(manager, shift, a, "clock_in", T0)
    first = _end(manager, shift, a, T0 + timedelta(hours=1))
    second = _end(manager, shift, a, T0 + timedelta(hours=2))

    assert second.status is WorkerStatus.SHIFT_ENDED
    assert second.worked_seconds == first.worked_seconds == 3600

    db = SessionLocal()
    try:
        events = (
            db.query(EventOutbox)
            .filter(EventOutbox.idempotency_key == f"assignment:{a.id}:shift_ended")
            .all()
        )
        assert len(events) == 1
        assert events[0].event_type == "WORKER_SHIFT_ENDED"
    finally:
        db.close()


def test_no_show_can_be_ended_with_zero_time(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    w = _end(manager, shift, a, T0 + timedelta(hours=8))

    assert w.status is WorkerStatus.SHIFT_ENDED
    assert w.worked_seconds == 0
    assert w.entries == []

    with pytest.raises(TerminalState):
        _clock(manager, shift, a, "clock_in", T0 + timedelta(hours=9))


def test_clock_actions_after_shift_ended_are_terminal(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    _clock(manager, shift, a, "clock_in", T0)
    _end(manager, shift, a, T0 + timedelta(hours=1))

    with pytest.raises(TerminalState):
        _clock(manager, shift, a, "clock_in", T0 + timedelta(hours=2))
    with pytest.raises(TerminalState):
        _clock(manager, shift, a, "clock_out", T0 + timedelta(hours=2))


def test_illegal_transitions_raise_invalid_state(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    with pytest.raises(InvalidState):
        _clock(manager, shift, a, "clock_out", T0)

    _clock(manager, shift, a, "clock_in", T0)
    with pytest.raises(InvalidState):
        _clock(manager, shift, a, "clock_in", T0 + timedelta(minutes=1))

    db = SessionLocal()
    try:
        assert len(time_ledger.list_entries(db, a.id)) == 1
    finally:
        db.close()


def test_end_shift_does_not_reclose_entry_closed_concurrently(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")
    _clock(manager, shift, a, "clock_in", T0)

    stale = SessionLocal()
    try:
        time_ledger.list_entries(stale, a.id)
        _clock(manager, shift, a, "clock_out", T0 + timedelta(hours=1))

        with pytest.raises(InvalidState):
            worker_state.end_shift(
                shift.company_id, shift.id, a.id, manager, now=T0 + timedelta(hours=3), db=stale
            )
        stale.rollback()
    finally:
        stale.close()

    check = SessionLocal()
    try:
        entries = time_ledger.list_entries(check, a.id)
        assert as_utc(entries[0].clock_out) == T0 + timedelta(hours=1)
        assert check.query(AssignedPersonnel).filter(AssignedPersonnel.id == a.id).one().shift_ended_at is None
    finally:
        check.close()


def test_clock_action_rejects_end_shift(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    with pytest.raises(ValidationError):
        _clock(manager, shift, a, "end_shift", T0)


def test_assignment_must_belong_to_shift(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    other_shift = shift_factory()
    a = assignment_factory(other_shift, "emp-1")

    with pytest.raises(NotFound):
        _clock(manager, shift, a, "clock_in", T0)

    with pytest.raises(NotFound):
        worker_state.clock_action(
            company_id=shift.company_id,
            shift_id=999999,
            assignment_id=a.id,
            action="clock_in",
            actor=manager,
            now=T0,
        )


def test_caller_owned_session_is_not_committed(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    db = SessionLocal()
    try:
        w = worker_state.clock_action(
            company_id=shift.company_id,
            shift_id=shift.id,
            assignment_id=a.id,
            action="clock_in",
            actor=manager,
            now=T0,
            db=db,
        )
        assert w.status is WorkerStatus.CLOCKED_IN
        db.rollback()
    finally:
        db.close()

    check = SessionLocal()
    try:
        assert time_ledger.list_entries(check, a.id) == []
    finally:
        check.close()
