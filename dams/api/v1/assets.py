from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from dams.api.v1.deps import asset_out, get_asset_service, grant_out, shared_asset_out
from dams.core.config import settings
from dams.core.errors import InvalidInputError
from dams.schemas.asset import (
    AssetListResponse,
    AssetResponse,
    SharedAssetListResponse,
    ShareIn,
    ShareResponse,
)
from dams.schemas.common import MessageResponse
from dams.services.access import Actor
from dams.services.assets import DEFAULT_MIME_TYPE, AssetService
from dams.services.auth import get_current_actor

router = APIRouter(prefix="/assets", tags=["assets"])


async def _read_upload(file: UploadFile | None) -> tuple[bytes, str, str]:
    if file is None:
        raise InvalidInputError("No file uploaded")
    data = await file.read()
    if not data:
        raise InvalidInputError("No file uploaded")
    if len(data) > settings.max_upload_bytes:
        raise InvalidInputError(f"File too large (max {settings.max_upload_size_mb} MB)")
    media_type = str(file.content_type or DEFAULT_MIME_TYPE)
    return data, str(file.filename or ""), media_type


@router.post("/upload", response_model=AssetResponse, status_code=201)
async def upload_file(
    file: UploadFile | None = File(default=None),
    service: AssetService = Depends(get_asset_service),
    actor: Actor = Depends(get_current_actor),
) -> AssetResponse:
    data, filename, media_type = await _read_upload(file)
    row = await service.upload(actor, data, filename, media_type, len(data))
    return AssetResponse(message="File uploaded successfully", status_code=201, asset=asset_out(row))


@router.get("/user", response_model=AssetListResponse)
async def get_user_assets(
    service: AssetService = Depends(get_asset_service),
    actor: Actor = Depends(get_current_actor),
) -> AssetListResponse:
    rows = await service.list_for_actor(actor)
    return AssetListResponse(
        message="User assets retrieved successfully",
        assets=[asset_out(r) for r in rows],
    )


@router.get("/shared", response_model=SharedAssetListResponse)
async def list_shared(
    service: AssetService = Depends(get_asset_service),
    actor: Actor = Depends(get_current_actor),
) -> SharedAssetListResponse:
    rows = await service.list_shared_with_actor(actor)
    return SharedAssetListResponse(
        message="Shared assets retrieved successfully",
        assets=[shared_asset_out(r) for r in rows],
    )


@router.get("/shared/{asset_id}", response_model=AssetResponse)
async def get_shared(
    asset_id: int,
    service: AssetService = Depends(get_asset_service),
    actor: Actor = Depends(get_current_actor),
) -> AssetResponse:
    row = await service.get_shared(actor, asset_id)
    return AssetResponse(message="Shared asset retrieved successfully", asset=asset_out(row))


@router.put("/file/{asset_id}", response_model=AssetResponse)
async def update_metadata(
    asset_id: int,
    file: UploadFile | None = File(default=None),
    service: AssetService = Depends(get_asset_service),
    actor: Actor = Depends(get_current_actor),
) -> AssetResponse:
    data, filename, media_type = await _read_upload(file)
    row = await service.replace(actor, asset_id, data, filename, media_type, len(data))
    return AssetResponse(message="Asset file replaced successfully", asset=asset_out(row))


@router.post("/share/{asset_id}", response_model=ShareResponse)
async def share(
    asset_id: int,
    payload: ShareIn,
    service: AssetService = Depends(get_asset_service),
    actor: Actor = Depends(get_current_actor),
) -> ShareResponse:
    outcome = await service.share(actor, asset_id, payload.shared_with_user_id)
    return ShareResponse(message=outcome.message, shared=grant_out(outcome.grant), created=outcome.created)


@router.delete("/{asset_id}", response_model=MessageResponse)
async def delete_asset(
    asset_id: int,
    service: AssetService = Depends(get_asset_service),
    actor: Actor = Depends(get_current_actor),
) -> MessageResponse:
    result = await service.delete(actor, asset_id)
    return MessageResponse(message=result["message"])
