from __future__ import annotations

from pydantic import BaseModel

from dams.schemas.common import MessageResponse


class ActivityOut(BaseModel):
    id: int
    user_id: int | None
    user_name: str | None
    action: str
    asset_id: int | None
    asset_name: str | None
    status: str
    message: str
    created_at: str


class ActivityListResponse(MessageResponse):
    activities: list[ActivityOut]
