from __future__ import annotations

from pydantic import BaseModel

from dams.schemas.common import MessageResponse


class AssetOut(BaseModel):
    id: int
    owner_id: int
    filename: str
    storage_key: str
    location_ref: str
    mime_type: str
    size_bytes: int
    created_at: str
    updated_at: str


class SharedAssetOut(AssetOut):
    owner_name: str | None = None
    owner_email: str
    shared_at: str


class ShareGrantOut(BaseModel):
    id: int
    asset_id: int
    grantee_id: int
    created_at: str


class ShareIn(BaseModel):
    shared_with_user_id: int | None = None


class AssetResponse(MessageResponse):
    asset: AssetOut


class AssetListResponse(MessageResponse):
    assets: list[AssetOut]


class SharedAssetListResponse(MessageResponse):
    assets: list[SharedAssetOut]


class ShareResponse(MessageResponse):
    shared: ShareGrantOut
    created: bool
