from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError

from app.core.authorization import Actor, Role, get_actor, require_role
from app.core.errors import WorkflowError, to_http_exception
from app.database import SessionLocal
from app.schemas.crew_chief_permission import (
    GrantPermissionRequest,
    PermissionCheckResponse,
    PermissionResponse,
)
from app.services import crew_chief_permissions
from app.services.permission_gate import check_crew_chief_permission
from app.services.worker_state import load_shift

router = APIRouter(prefix="/crew-chief-permissions", tags=["Crew Chief Permissions"])


@router.post("", response_model=PermissionResponse)
def grant_permission(
    payload: GrantPermissionRequest,
    actor: Actor = Depends(require_role(Role.MANAGER)),
):
    db = SessionLocal()
    try:
        row = crew_chief_permissions.grant_permission(
            db,
            company_id=actor.company_id,
            user_id=payload.user_id,
            permission_type=payload.permission_type,
            target_id=payload.target_id,
            granted_by_user_id=actor.user_id,
        )
        db.commit()
        db.refresh(row)
        return row
    except WorkflowError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Permission already granted") from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.get("", response_model=List[PermissionResponse])
def list_permissions(
    user_id: Optional[str] = None,
    include_revoked: bool = False,
    actor: Actor = Depends(get_actor),
):
    if not actor.is_manager:
        if user_id is not None and user_id != actor.user_id:
            raise HTTPException(status_code=403, detail="Forbidden")
        user_id = actor.user_id

    db = SessionLocal()
    try:
        return crew_chief_permissions.list_permissions(
            db,
            company_id=actor.company_id,
            user_id=user_id,
            include_revoked=include_revoked,
        )
    finally:
        db.close()


@router.get("/check", response_model=PermissionCheckResponse)
def check_permission(
    shift_id: int,
    user_id: Optional[str] = None,
    actor: Actor = Depends(get_actor),
):
    target_user_id = user_id or actor.user_id
    if target_user_id != actor.user_id and not actor.is_manager:
        raise HTTPException(status_code=403, detail="Forbidden")

    db = SessionLocal()
    try:
        shift = load_shift(db, actor.company_id, shift_id)
        result = check_crew_chief_permission(db, user_id=target_user_id, shift=shift)
        return PermissionCheckResponse(
            shift_id=int(shift.id),
            user_id=str(target_user_id),
            has_permission=result.has_permission,
            permission_source=result.source,
            permissions=[PermissionResponse.model_validate(g) for g in result.grants],
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    finally:
        db.close()


@router.delete("/{permission_id}", response_model=PermissionResponse)
def revoke_permission(
    permission_id: int,
    actor: Actor = Depends(require_role(Role.MANAGER)),
):
    db = SessionLocal()
    try:
        row = crew_chief_permissions.revoke_permission(
            db,
            company_id=actor.company_id,
            permission_id=permission_id,
        )
        db.commit()
        db.refresh(row)
        return row
    except WorkflowError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
