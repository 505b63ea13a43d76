"""Capability checks for clock actions and timesheet approvals.

Managers are always allowed. Crew chiefs (and employees holding a grant) act
only on shifts they are designated for or hold a shift/job/client grant on.
Clients may only view, approve or reject timesheets of their own company's
shifts. Denials raise PermissionDenied, never InvalidState.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.core.authorization import Actor, Role
from app.core.errors import PermissionDenied
from app.models.crew_chief_permission import CrewChiefPermission
from app.models.job import Job
from app.models.shift import Shift
from app.models.timesheet import Timesheet

logger = logging.getLogger(__name__)


class Action(Enum):
    CLOCK = "clock"
    FINALIZE = "finalize"
    VIEW = "view"
    APPROVE_CLIENT = "approve_client"
    APPROVE_MANAGER = "approve_manager"
    REJECT = "reject"


_CREW_CHIEF_ACTIONS = {Action.CLOCK, Action.FINALIZE, Action.VIEW}
_CLIENT_ACTIONS = {Action.VIEW, Action.APPROVE_CLIENT, Action.REJECT}

# Most specific grant wins when reporting the permission source.
_SOURCE_ORDER = {"shift": 1, "job": 2, "client": 3}


@dataclass(frozen=True)
class PermissionCheck:
    has_permission: bool
    source: str
    grants: List[CrewChiefPermission] = field(default_factory=list)


def _shift_client_id(db: Session, shift: Shift) -> Optional[int]:
    job = db.query(Job).filter(Job.id == shift.job_id).one_or_none()
    return None if job is None else int(job.client_id)


def check_crew_chief_permission(db: Session, *, user_id: str, shift: Shift) -> PermissionCheck:
    if shift.crew_chief_user_id is not None and str(shift.crew_chief_user_id) == str(user_id):
        return PermissionCheck(has_permission=True, source="designated")

    client_id = _shift_client_id(db, shift)

    scopes = [
        and_(CrewChiefPermission.permission_type == "shift", CrewChiefPermission.target_id == int(shift.id)),
        and_(CrewChiefPermission.permission_type == "job", CrewChiefPermission.target_id == int(shift.job_id)),
    ]
    if client_id is not None:
        scopes.append(
            and_(CrewChiefPermission.permission_type == "client", CrewChiefPermission.target_id == client_id)
        )

    grants = (
        db.query(CrewChiefPermission)
        .filter(
            CrewChiefPermission.company_id == int(shift.company_id),
            CrewChiefPermission.user_id == str(user_id),
            CrewChiefPermission.revoked_at.is_(None),
            or_(*scopes),
        )
        .all()
    )

    if not grants:
        return PermissionCheck(has_permission=False, source="none")

    grants.sort(key=lambda g: _SOURCE_ORDER.get(g.permission_type, 99))
    return PermissionCheck(has_permission=True, source=grants[0].permission_type, grants=grants)


def is_allowed(db: Session, actor: Actor, action: Action, shift: Shift) -> bool:
    if int(actor.company_id) != int(shift.company_id):
        return False

    if actor.role is Role.MANAGER:
        return True

    if actor.role is Role.CLIENT:
        if action not in _CLIENT_ACTIONS:
            return False
        return actor.client_id is not None and _shift_client_id(db, shift) == int(actor.client_id)

    # Crew chiefs and employees are judged only by designation or explicit grants.
    if action not in _CREW_CHIEF_ACTIONS:
        return False
    return check_crew_chief_permission(db, user_id=actor.user_id, shift=shift).has_permission


def authorize(
    db: Session,
    actor: Actor,
    action: Action,
    shift: Shift,
    timesheet: Optional[Timesheet] = None,
) -> None:
    if is_allowed(db, actor, action, shift):
        return

    logger.info(
        "Permission denied",
        extra={
            "user_id": actor.user_id,
            "role": actor.role.value,
            "action": action.value,
            "shift_id": shift.id,
            "timesheet_id": None if timesheet is None else timesheet.id,
        },
    )
    raise PermissionDenied(
        f"{actor.role.value} is not allowed to {action.value} on shift {shift.id}",
        action=action.value,
        shift_id=shift.id,
    )
