from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError

from app.core.authorization import Actor, get_actor
from app.core.errors import WorkflowError, to_http_exception
from app.database import SessionLocal
from app.schemas.timesheet import (
    ApproveTimesheetRequest,
    PendingTimesheetRow,
    RejectTimesheetRequest,
    TimesheetResponse,
    TimesheetStatusResponse,
)
from app.services import timesheet_service

router = APIRouter(
    prefix="/timesheets",
    tags=["Timesheets"],
)


@router.get("/pending", response_model=List[PendingTimesheetRow])
def list_pending_timesheets(actor: Actor = Depends(get_actor)):
    db = SessionLocal()
    try:
        rows = timesheet_service.list_pending(actor.company_id, actor, db=db)
        return [
            PendingTimesheetRow(
                id=r.id,
                shift_id=r.shift_id,
                status=r.status,
                revision=int(r.revision),
                total_hours=r.total_hours,
                submitted_by=r.submitted_by,
                submitted_at=r.submitted_at,
            )
            for r in rows
        ]
    finally:
        db.close()


@router.get("/{timesheet_id}", response_model=TimesheetResponse)
def get_timesheet(timesheet_id: str, actor: Actor = Depends(get_actor)):
    db = SessionLocal()
    try:
        return timesheet_service.get_timesheet(actor.company_id, timesheet_id, actor, db=db)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    finally:
        db.close()


@router.post("/{timesheet_id}/approve", response_model=TimesheetStatusResponse)
def approve_timesheet(
    timesheet_id: str,
    payload: ApproveTimesheetRequest,
    actor: Actor = Depends(get_actor),
):
    db = SessionLocal()
    try:
        timesheet = timesheet_service.approve_timesheet(
            company_id=actor.company_id,
            timesheet_id=timesheet_id,
            approval_type=payload.approval_type,
            signature=payload.signature,
            actor=actor,
            db=db,
        )
        db.commit()
        return TimesheetStatusResponse(timesheet_id=timesheet.id, status=timesheet.status)
    except WorkflowError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=409,
            detail={"code": "invalid_state", "message": "Concurrent update detected; refresh and retry"},
        ) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/{timesheet_id}/reject", response_model=TimesheetStatusResponse)
def reject_timesheet(
    timesheet_id: str,
    payload: RejectTimesheetRequest,
    actor: Actor = Depends(get_actor),
):
    db = SessionLocal()
    try:
        timesheet = timesheet_service.reject_timesheet(
            company_id=actor.company_id,
            timesheet_id=timesheet_id,
            reason=payload.reason,
            actor=actor,
            db=db,
        )
        db.commit()
        return TimesheetStatusResponse(timesheet_id=timesheet.id, status=timesheet.status)
    except WorkflowError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
