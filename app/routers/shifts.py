from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError

from app.core.authorization import Actor, get_actor
from app.core.errors import WorkflowError, to_http_exception
from app.database import SessionLocal
from app.schemas.shift import (
    ClockActionRequest,
    EndAllShiftsResponse,
    FinalizeTimesheetResponse,
    ShiftStatusResponse,
    WorkerStatusOut,
)
from app.services import shift_aggregator, timesheet_service, worker_state
from app.services.permission_gate import Action, authorize
from app.services.worker_state import WorkerSnapshot

router = APIRouter(
    prefix="/shifts",
    tags=["Shifts"],
)


def _worker_out(worker: WorkerSnapshot) -> WorkerStatusOut:
    return WorkerStatusOut(
        assignment_id=worker.assignment_id,
        employee_id=worker.employee_id,
        employee_name=worker.employee_name,
        role_code=worker.role_code,
        status=worker.status.value,
        worked_seconds=worker.worked_seconds,
        entries=worker.entries,
    )


def _conflict() -> HTTPException:
    # A racing request won the row; the caller should refresh and retry.
    return HTTPException(
        status_code=409,
        detail={"code": "invalid_state", "message": "Concurrent update detected; refresh and retry"},
    )


@router.post("/{shift_id}/assigned/{assignment_id}/clock", response_model=WorkerStatusOut)
def clock_endpoint(
    shift_id: int,
    assignment_id: int,
    payload: ClockActionRequest,
    actor: Actor = Depends(get_actor),
):
    db = SessionLocal()
    try:
        worker = worker_state.clock_action(
            company_id=actor.company_id,
            shift_id=shift_id,
            assignment_id=assignment_id,
            action=payload.action,
            actor=actor,
            db=db,
        )
        db.commit()
        return _worker_out(worker)
    except WorkflowError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise _conflict() from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/{shift_id}/assigned/{assignment_id}/end-shift", response_model=WorkerStatusOut)
def end_shift_endpoint(
    shift_id: int,
    assignment_id: int,
    actor: Actor = Depends(get_actor),
):
    db = SessionLocal()
    try:
        worker = worker_state.end_shift(
            company_id=actor.company_id,
            shift_id=shift_id,
            assignment_id=assignment_id,
            actor=actor,
            db=db,
        )
        db.commit()
        return _worker_out(worker)
    except WorkflowError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise _conflict() from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/{shift_id}/end-all-shifts", response_model=EndAllShiftsResponse)
def end_all_shifts_endpoint(
    shift_id: int,
    actor: Actor = Depends(get_actor),
):
    db = SessionLocal()
    try:
        result = worker_state.end_all_shifts(
            company_id=actor.company_id,
            shift_id=shift_id,
            actor=actor,
            db=db,
        )
        return EndAllShiftsResponse(
            shift_id=result.shift_id,
            ended=[_worker_out(w) for w in result.ended],
            failed=result.failed,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    finally:
        db.close()


@router.get("/{shift_id}/status", response_model=ShiftStatusResponse)
def shift_status_endpoint(
    shift_id: int,
    actor: Actor = Depends(get_actor),
):
    db = SessionLocal()
    try:
        shift = worker_state.load_shift(db, actor.company_id, shift_id)
        authorize(db, actor, Action.VIEW, shift)
        summary = shift_aggregator.summarize_shift(db, shift)
        return ShiftStatusResponse(
            shift_id=summary.shift_id,
            requested_workers=summary.requested_workers,
            assigned_count=summary.assigned_count,
            counts=summary.counts,
            completion_percentage=summary.completion_percentage,
            is_complete=summary.is_complete,
            is_fully_staffed=summary.is_fully_staffed,
            total_seconds=summary.total_seconds,
            total_hours=summary.total_hours,
            workers=[_worker_out(w) for w in summary.workers],
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    finally:
        db.close()


@router.post("/{shift_id}/finalize-timesheet", response_model=FinalizeTimesheetResponse)
def finalize_timesheet_endpoint(
    shift_id: int,
    actor: Actor = Depends(get_actor),
):
    db = SessionLocal()
    try:
        timesheet = timesheet_service.finalize_timesheet(
            company_id=actor.company_id,
            shift_id=shift_id,
            actor=actor,
            db=db,
        )
        db.commit()
        return FinalizeTimesheetResponse(
            timesheet_id=timesheet.id,
            shift_id=timesheet.shift_id,
            status=timesheet.status,
            revision=int(timesheet.revision),
            total_hours=timesheet.total_hours,
        )
    except WorkflowError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise _conflict() from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
