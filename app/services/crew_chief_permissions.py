import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationError
from app.core.timeutils import as_utc, utcnow
from app.models.crew_chief_permission import PERMISSION_TYPES, CrewChiefPermission

logger = logging.getLogger(__name__)


def _active_grant(
    db: Session, company_id: int, user_id: str, permission_type: str, target_id: int
) -> Optional[CrewChiefPermission]:
    return (
        db.query(CrewChiefPermission)
        .filter(
            CrewChiefPermission.company_id == int(company_id),
            CrewChiefPermission.user_id == str(user_id),
            CrewChiefPermission.permission_type == str(permission_type),
            CrewChiefPermission.target_id == int(target_id),
            CrewChiefPermission.revoked_at.is_(None),
        )
        .with_for_update()
        .one_or_none()
    )


def grant_permission(
    db: Session,
    *,
    company_id: int,
    user_id: str,
    permission_type: str,
    target_id: int,
    granted_by_user_id: str,
    now: Optional[datetime] = None,
) -> CrewChiefPermission:
    """Grant crew-chief rights on a shift, job or client. Replaces any active identical grant."""
    if permission_type not in PERMISSION_TYPES:
        raise ValidationError(
            "permission_type must be one of shift, job, client",
            field="permission_type",
        )
    if not str(user_id or "").strip():
        raise ValidationError("user_id is required", field="user_id")

    now = as_utc(now or utcnow())

    existing = _active_grant(db, company_id, user_id, permission_type, target_id)
    if existing is not None:
        existing.revoked_at = now
        db.flush()

    row = CrewChiefPermission(
        company_id=int(company_id),
        user_id=str(user_id),
        permission_type=str(permission_type),
        target_id=int(target_id),
        granted_by_user_id=str(granted_by_user_id),
        granted_at=now,
    )
    db.add(row)
    db.flush()

    logger.info(
        "Crew chief permission granted",
        extra={
            "permission_id": row.id,
            "user_id": row.user_id,
            "permission_type": row.permission_type,
            "target_id": row.target_id,
            "granted_by": row.granted_by_user_id,
        },
    )
    return row


def revoke_permission(
    db: Session,
    *,
    company_id: int,
    permission_id: int,
    now: Optional[datetime] = None,
) -> CrewChiefPermission:
    row = (
        db.query(CrewChiefPermission)
        .filter(
            CrewChiefPermission.id == int(permission_id),
            CrewChiefPermission.company_id == int(company_id),
        )
        .with_for_update()
        .one_or_none()
    )
    if row is None:
        raise NotFound("Permission not found", permission_id=int(permission_id))

    if row.revoked_at is None:
        row.revoked_at = as_utc(now or utcnow())
        db.flush()
        logger.info("Crew chief permission revoked", extra={"permission_id": row.id})

    return row


def list_permissions(
    db: Session,
    *,
    company_id: int,
    user_id: Optional[str] = None,
    include_revoked: bool = False,
) -> List[CrewChiefPermission]:
    q = db.query(CrewChiefPermission).filter(CrewChiefPermission.company_id == int(company_id))
    if user_id is not None:
        q = q.filter(CrewChiefPermission.user_id == str(user_id))
    if not include_revoked:
        q = q.filter(CrewChiefPermission.revoked_at.is_(None))
    return q.order_by(CrewChiefPermission.granted_at.desc(), CrewChiefPermission.id.desc()).all()
