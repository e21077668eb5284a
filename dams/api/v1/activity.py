from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from dams.api.v1.deps import as_iso, get_activity_logger
from dams.schemas.activity import ActivityListResponse, ActivityOut
from dams.services.access import Actor
from dams.services.activity import ActivityLogger
from dams.services.auth import get_current_actor

router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("", response_model=ActivityListResponse)
async def list_activity(
    limit: int = Query(default=200, ge=1, le=1000),
    activity: ActivityLogger = Depends(get_activity_logger),
    actor: Actor = Depends(get_current_actor),
) -> ActivityListResponse:
    rows = await activity.list_for_actor(actor, limit=limit)
    return ActivityListResponse(
        message="Activities retrieved successfully",
        activities=[
            ActivityOut(
                id=r.id,
                user_id=r.user_id,
                user_name=r.user_name,
                action=r.action,
                asset_id=r.asset_id,
                asset_name=r.asset_name,
                status=r.status,
                message=r.message,
                created_at=as_iso(r.created_at),
            )
            for r in rows
        ],
    )
