from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from app.database import SessionLocal
from app.models.time_entry import TimeEntry
from app.models.timesheet import Timesheet

T0 = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


def test_duplicate_entry_number_rejected(shift_factory, assignment_factory):
    a = assignment_factory(shift_factory(), "emp-1")

    db1 = SessionLocal()
    db2 = SessionLocal()

    try:
        db1.add(
            TimeEntry(
                company_id=1,
                assigned_personnel_id=a.id,
                entry_number=1,
                clock_in=T0,
                clock_out=T0 + timedelta(hours=1),
            )
        )
        db1.commit()

        db2.add(
            TimeEntry(
                company_id=1,
                assigned_personnel_id=a.id,
                entry_number=1,
                clock_in=T0 + timedelta(hours=2),
                clock_out=T0 + timedelta(hours=3),
            )
        )
        with pytest.raises(IntegrityError):
            db2.commit()
    finally:
        db1.rollback()
        db2.rollback()
        db1.close()
        db2.close()


def test_second_open_entry_rejected(shift_factory, assignment_factory):
    a = assignment_factory(shift_factory(), "emp-1")

    db1 = SessionLocal()
    db2 = SessionLocal()

    try:
        db1.add(TimeEntry(company_id=1, assigned_personnel_id=a.id, entry_number=1, clock_in=T0))
        db1.commit()

        db2.add(TimeEntry(company_id=1, assigned_personnel_id=a.id, entry_number=2, clock_in=T0))
        with pytest.raises(IntegrityError):
            db2.commit()
    finally:
        db1.rollback()
        db2.rollback()
        db1.close()
        db2.close()


def test_one_timesheet_per_shift(shift_factory):
    shift = shift_factory()

    db1 = SessionLocal()
    db2 = SessionLocal()

    try:
        db1.add(Timesheet(company_id=1, shift_id=shift.id, status="pending_client_approval"))
        db1.commit()

        db2.add(Timesheet(company_id=1, shift_id=shift.id, status="pending_client_approval"))
        with pytest.raises(IntegrityError):
            db2.commit()
    finally:
        db1.rollback()
        db2.rollback()
        db1.close()
        db2.close()
