from __future__ import annotations

from datetime import datetime

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dams.db.session import get_db
from dams.models.asset import Asset, ShareGrant
from dams.schemas.asset import AssetOut, ShareGrantOut, SharedAssetOut
from dams.services.activity import ActivityLogger
from dams.services.assets import AssetService
from dams.services.repository import AssetRepository, SharedAssetRow
from dams.services.storage import BlobStore


def as_iso(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.isoformat()


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_activity_logger(request: Request) -> ActivityLogger:
    return request.app.state.activity_logger


def get_asset_service(
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    activity: ActivityLogger = Depends(get_activity_logger),
) -> AssetService:
    return AssetService(AssetRepository(db), blob_store, activity)


def asset_out(row: Asset) -> AssetOut:
    return AssetOut(
        id=row.id,
        owner_id=row.owner_id,
        filename=row.filename,
        storage_key=row.storage_key,
        location_ref=row.location_ref,
        mime_type=row.mime_type,
        size_bytes=row.size_bytes,
        created_at=as_iso(row.created_at),
        updated_at=as_iso(row.updated_at),
    )


def shared_asset_out(row: SharedAssetRow) -> SharedAssetOut:
    return SharedAssetOut(
        **asset_out(row.asset).model_dump(),
        owner_name=row.owner_name,
        owner_email=row.owner_email,
        shared_at=as_iso(row.shared_at),
    )


def grant_out(row: ShareGrant) -> ShareGrantOut:
    return ShareGrantOut(
        id=row.id,
        asset_id=row.asset_id,
        grantee_id=row.grantee_id,
        created_at=as_iso(row.created_at),
    )
