from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Depends, HTTPException, Request

from app.deps.auth import require_auth


class Role(Enum):
    MANAGER = "MANAGER"
    CREW_CHIEF = "CREW_CHIEF"
    EMPLOYEE = "EMPLOYEE"
    CLIENT = "CLIENT"


_ROLE_ALIASES = {
    "MANAGER": Role.MANAGER,
    "ADMIN": Role.MANAGER,
    "MANAGER/ADMIN": Role.MANAGER,
    "CREW_CHIEF": Role.CREW_CHIEF,
    "CREW CHIEF": Role.CREW_CHIEF,
    "EMPLOYEE": Role.EMPLOYEE,
    "USER": Role.EMPLOYEE,
    "CLIENT": Role.CLIENT,
}

_RANK = {
    Role.CLIENT: 0,
    Role.EMPLOYEE: 1,
    Role.CREW_CHIEF: 2,
    Role.MANAGER: 3,
}


def parse_role(value) -> Role:
    if value is None:
        return Role.EMPLOYEE
    role = _ROLE_ALIASES.get(str(value).strip().upper())
    if role is None:
        raise ValueError(f"Unknown role: {value}")
    return role


@dataclass(frozen=True)
class Actor:
    user_id: str
    company_id: int
    role: Role
    client_id: Optional[int] = None

    @property
    def is_manager(self) -> bool:
        return self.role is Role.MANAGER


def get_actor(request: Request, _auth: tuple[str, int] = Depends(require_auth)) -> Actor:
    claims = getattr(request.state, "claims", {}) or {}

    try:
        role = parse_role(claims.get("role"))
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid role claim") from exc

    client_id = claims.get("client_id")
    if role is Role.CLIENT and client_id is None:
        raise HTTPException(status_code=403, detail="Client token missing client_id")

    request.state.role = role.value
    return Actor(
        user_id=str(request.state.user_id),
        company_id=int(request.state.company_id),
        role=role,
        client_id=None if client_id is None else int(client_id),
    )


def require_role(role: Role):
    def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if _RANK[actor.role] < _RANK[role]:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return actor

    return dependency
