from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dams.core.errors import RepositoryFailureError
from dams.models.activity import ActivityLog
from dams.models.asset import Asset
from dams.models.user import User
from dams.services.access import Actor

logger = logging.getLogger(__name__)


class ActivityRecorder(Protocol):
    async def record(
        self,
        *,
        user_id: int | None,
        action: str,
        asset_id: int | None = None,
        status: str = "success",
        message: str = "",
    ) -> None: ...


@dataclass(slots=True)
class ActivityEntry:
    id: int
    user_id: int | None
    user_name: str | None
    action: str
    asset_id: int | None
    asset_name: str | None
    status: str
    message: str
    created_at: datetime


class ActivityLogger:
    """Writes activity rows in a session of its own.

    Recording never raises: a broken audit trail must not fail the request
    that produced the event.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        *,
        user_id: int | None,
        action: str,
        asset_id: int | None = None,
        status: str = "success",
        message: str = "",
    ) -> None:
        try:
            async with self.session_factory() as db:
                db.add(
                    ActivityLog(
                        user_id=user_id,
                        action=action,
                        asset_id=asset_id,
                        status=status,
                        message=message[:2000],
                    )
                )
                await db.commit()
        except Exception:
            logger.exception("Error recording activity user_id=%s action=%s asset_id=%s", user_id, action, asset_id)
            return
        logger.debug("Activity recorded user_id=%s action=%s asset_id=%s status=%s", user_id, action, asset_id, status)

    async def list_for_actor(self, actor: Actor, *, limit: int = 200) -> list[ActivityEntry]:
        stmt = (
            select(ActivityLog, User.name, Asset.filename)
            .outerjoin(User, User.id == ActivityLog.user_id)
            .outerjoin(Asset, Asset.id == ActivityLog.asset_id)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(limit)
        )
        if not actor.is_admin:
            stmt = stmt.where(ActivityLog.user_id == actor.id)

        try:
            async with self.session_factory() as db:
                rows = (await db.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise RepositoryFailureError("Failed to fetch activities") from exc

        logger.info("Fetched activity logs for user_id=%s count=%s", actor.id, len(rows))
        return [
            ActivityEntry(
                id=log.id,
                user_id=log.user_id,
                user_name=user_name,
                action=log.action,
                asset_id=log.asset_id,
                asset_name=asset_name,
                status=log.status,
                message=log.message,
                created_at=log.created_at,
            )
            for log, user_name, asset_name in rows
        ]
