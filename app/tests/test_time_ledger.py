from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.errors import InvalidState
from app.core.timeutils import as_utc
from app.database import SessionLocal
from app.models.assigned_personnel import AssignedPersonnel
from app.models.time_entry import TimeEntry
from app.services import time_ledger, worker_state

T0 = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


def _entries(assignment_id: int):
    db = SessionLocal()
    try:
        return time_ledger.list_entries(db, assignment_id)
    finally:
        db.close()


def _clock(manager, shift, assignment, action, at):
    return worker_state.clock_action(
        company_id=shift.company_id,
        shift_id=shift.id,
        assignment_id=assignment.id,
        action=action,
        actor=manager,
        now=at,
    )


def test_split_shift_totals_seven_hours(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    _clock(manager, shift, a, "clock_in", T0)
    _clock(manager, shift, a, "clock_out", T0 + timedelta(hours=3))
    _clock(manager, shift, a, "clock_in", T0 + timedelta(hours=4))
    worker = worker_state.end_shift(
        shift.company_id, shift.id, a.id, manager, now=T0 + timedelta(hours=8)
    )

    entries = _entries(a.id)
    assert [e.entry_number for e in entries] == [1, 2]
    assert time_ledger.worked_seconds(entries) == 7 * 3600
    assert time_ledger.seconds_to_hours(worker.worked_seconds) == Decimal("7.00")


def test_fourth_clock_in_rejected_after_three_entries(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    at = T0
    for _ in range(time_ledger.MAX_TIME_ENTRIES_PER_ASSIGNMENT):
        _clock(manager, shift, a, "clock_in", at)
        at += timedelta(hours=1)
        _clock(manager, shift, a, "clock_out", at)
        at += timedelta(minutes=30)

    with pytest.raises(InvalidState) as excinfo:
        _clock(manager, shift, a, "clock_in", at)

    assert "slots" in excinfo.value.message
    assert len(_entries(a.id)) == 3


def test_clock_out_before_clock_in_rejected(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")

    _clock(manager, shift, a, "clock_in", T0)
    with pytest.raises(InvalidState):
        _clock(manager, shift, a, "clock_out", T0 - timedelta(minutes=5))

    entries = _entries(a.id)
    assert len(entries) == 1
    assert entries[0].clock_out is None


def test_racing_clock_out_does_not_overwrite_first(manager, shift_factory, assignment_factory):
    shift = shift_factory()
    a = assignment_factory(shift, "emp-1")
    _clock(manager, shift, a, "clock_in", T0)

    # This session read the entry while it was still open.
    stale = SessionLocal()
    try:
        assignment = stale.query(AssignedPersonnel).filter(AssignedPersonnel.id == a.id).one()
        assert time_ledger.open_entry(time_ledger.list_entries(stale, a.id)) is not None

        _clock(manager, shift, a, "clock_out", T0 + timedelta(hours=1))

        with pytest.raises(InvalidState) as excinfo:
            time_ledger.clock_out(stale, assignment, T0 + timedelta(hours=2))
        assert "already clocked out" in excinfo.value.message
        stale.rollback()
    finally:
        stale.close()

    entries = _entries(a.id)
    assert len(entries) == 1
    assert as_utc(entries[0].clock_out) == T0 + timedelta(hours=1)


def test_open_entry_contributes_nothing_until_closed():
    closed = TimeEntry(entry_number=1, clock_in=T0, clock_out=T0 + timedelta(minutes=90))
    still_open = TimeEntry(entry_number=2, clock_in=T0 + timedelta(hours=2), clock_out=None)

    assert time_ledger.open_entry([closed, still_open]) is still_open
    assert time_ledger.worked_seconds([closed, still_open]) == 90 * 60


def test_seconds_to_hours_rounds_half_up():
    assert time_ledger.seconds_to_hours(18) == Decimal("0.01")
    assert time_ledger.seconds_to_hours(17) == Decimal("0.00")
    assert time_ledger.seconds_to_hours(5400) == Decimal("1.50")


def test_naive_timestamps_treated_as_utc():
    entry = TimeEntry(
        entry_number=1,
        clock_in=datetime(2026, 3, 14, 9, 0),
        clock_out=datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc),
    )
    assert time_ledger.entry_seconds(entry) == 3600
