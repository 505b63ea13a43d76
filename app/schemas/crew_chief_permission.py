from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class GrantPermissionRequest(BaseModel):
    user_id: str
    permission_type: Literal["shift", "job", "client"]
    target_id: int


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    user_id: str
    permission_type: str
    target_id: int
    granted_by_user_id: str
    granted_at: datetime
    revoked_at: Optional[datetime]


class PermissionCheckResponse(BaseModel):
    shift_id: int
    user_id: str
    has_permission: bool
    permission_source: str
    permissions: List[PermissionResponse]
