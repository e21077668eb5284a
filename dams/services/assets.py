"""Asset Service: coordinates blob-store writes with metadata rows.

The two stores share no transaction. Each operation fixes an explicit
order between them and, when a step fails after the other store has
already changed, logs the resulting inconsistency (``orphan_blob`` or
``dangling_reference``) instead of attempting a rollback. The
reconciliation sweep in ``dams.services.reconcile`` picks those up.

Replace deletes the old blob *before* writing the new one: an asset may
briefly have no readable blob if the write fails, but never holds two.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from dams.core.errors import (
    AssetServiceError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    RepositoryFailureError,
    StorageFailureError,
)
from dams.models.asset import Asset, ShareGrant
from dams.services.access import Action, Actor, can_perform
from dams.services.activity import ActivityRecorder
from dams.services.repository import AssetRepository, SharedAssetRow
from dams.services.storage import BlobStore

logger = logging.getLogger(__name__)

STORAGE_KEY_PREFIX = "assets/"
SHARED_ACCESS_DENIED = "Unauthorized or asset not shared with you"
DEFAULT_MIME_TYPE = "application/octet-stream"
MAX_FILENAME_LENGTH = Asset.__table__.c.filename.type.length
MAX_MIME_TYPE_LENGTH = Asset.__table__.c.mime_type.type.length

_FILENAME_SANITIZE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def new_storage_key(filename: str) -> str:
    """Fresh key for one blob version; the uuid makes it unique, the name keeps it readable."""
    base = str(filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    base = _FILENAME_SANITIZE_RE.sub("_", base).strip("._")[:200] or "file"
    return f"{STORAGE_KEY_PREFIX}{uuid.uuid4().hex}-{base}"


def _check_file_metadata(filename: str, mime_type: str) -> None:
    # Both land in bounded columns; reject here, before any blob is written.
    if len(filename) > MAX_FILENAME_LENGTH:
        raise InvalidInputError(f"Filename too long (max {MAX_FILENAME_LENGTH} characters)")
    if len(mime_type) > MAX_MIME_TYPE_LENGTH:
        raise InvalidInputError(f"Content type too long (max {MAX_MIME_TYPE_LENGTH} characters)")


@dataclass(slots=True)
class ShareOutcome:
    grant: ShareGrant
    created: bool
    message: str


@dataclass(slots=True)
class _Event:
    action: str
    asset_id: int | None = None
    message: str = ""


class AssetService:
    def __init__(
        self,
        repository: AssetRepository,
        blob_store: BlobStore,
        activity: ActivityRecorder | None = None,
    ) -> None:
        self.repository = repository
        self.blob_store = blob_store
        self.activity = activity

    async def _emit(self, actor: Actor, event: _Event, status: str, message: str) -> None:
        if self.activity is None:
            return
        try:
            await self.activity.record(
                user_id=actor.id,
                action=event.action,
                asset_id=event.asset_id,
                status=status,
                message=message,
            )
        except Exception:
            logger.exception("Activity recorder raised for action=%s", event.action)

    @asynccontextmanager
    async def _tracked(self, actor: Actor, action: str, asset_id: int | None = None) -> AsyncIterator[_Event]:
        event = _Event(action=action, asset_id=asset_id)
        try:
            yield event
        except AssetServiceError as exc:
            await self._emit(actor, event, "failed", exc.message)
            raise
        except Exception as exc:
            await self._emit(actor, event, "failed", str(exc) or exc.__class__.__name__)
            raise
        await self._emit(actor, event, "success", event.message)

    async def _put_blob(self, key: str, data: bytes, mime_type: str) -> str:
        return await asyncio.to_thread(self.blob_store.put, key, data, mime_type)

    async def _delete_blob(self, key: str) -> None:
        await asyncio.to_thread(self.blob_store.delete, key)

    async def upload(
        self,
        actor: Actor,
        data: bytes,
        filename: str,
        mime_type: str | None = None,
        size: int | None = None,
    ) -> Asset:
        async with self._tracked(actor, "upload") as event:
            if not data:
                raise InvalidInputError("No file uploaded")
            mime_type = mime_type or DEFAULT_MIME_TYPE
            _check_file_metadata(filename or "", mime_type)

            storage_key = new_storage_key(filename)
            location_ref = await self._put_blob(storage_key, data, mime_type)

            try:
                asset = await self.repository.create_asset(
                    owner_id=actor.id,
                    filename=filename or "file",
                    storage_key=storage_key,
                    location_ref=location_ref,
                    mime_type=mime_type,
                    size_bytes=len(data) if size is None else int(size),
                )
            except RepositoryFailureError:
                logger.error(
                    "Metadata insert failed after blob write; blob left without a row",
                    extra={"inconsistency": "orphan_blob", "storage_key": storage_key, "owner_id": actor.id},
                )
                raise

            event.asset_id = asset.id
            event.message = "File uploaded successfully"
            logger.info("Asset %s uploaded by user %s (%s bytes)", asset.id, actor.id, asset.size_bytes)
            return asset

    async def list_for_actor(self, actor: Actor) -> list[Asset]:
        async with self._tracked(actor, "get_user_assets") as event:
            owner_id = None if actor.is_admin else actor.id
            assets = await self.repository.list_assets(owner_id=owner_id)
            event.message = "User assets retrieved successfully"
            logger.info("Fetched %s assets for user %s role=%s", len(assets), actor.id, actor.role.value)
            return assets

    async def replace(
        self,
        actor: Actor,
        asset_id: int,
        data: bytes,
        filename: str,
        mime_type: str | None = None,
        size: int | None = None,
    ) -> Asset:
        async with self._tracked(actor, "update_asset_metadata", asset_id) as event:
            if not data:
                raise InvalidInputError("No file uploaded")
            mime_type = mime_type or DEFAULT_MIME_TYPE
            _check_file_metadata(filename or "", mime_type)

            # Row lock held until update_asset commits or we roll back.
            asset = await self.repository.get_asset(asset_id, for_update=True)
            if asset is None:
                await self.repository.rollback()
                raise NotFoundError("Asset not found")
            if not can_perform(actor, asset.owner_id, Action.replace):
                await self.repository.rollback()
                logger.warning("User %s denied replace on asset %s", actor.id, asset_id)
                raise ForbiddenError("Unauthorized: You can only update your own assets")

            old_key = asset.storage_key
            try:
                await self._delete_blob(old_key)
            except StorageFailureError:
                await self.repository.rollback()
                raise

            new_key = new_storage_key(filename)
            try:
                location_ref = await self._put_blob(new_key, data, mime_type)
            except StorageFailureError:
                await self.repository.rollback()
                logger.error(
                    "Blob write failed after old blob was deleted; row points at a missing blob",
                    extra={"inconsistency": "dangling_reference", "asset_id": asset_id, "storage_key": old_key},
                )
                raise

            try:
                asset = await self.repository.update_asset(
                    asset,
                    filename=filename or asset.filename,
                    storage_key=new_key,
                    location_ref=location_ref,
                    mime_type=mime_type,
                    size_bytes=len(data) if size is None else int(size),
                )
            except RepositoryFailureError:
                logger.error(
                    "Metadata update failed after blob swap; new blob orphaned, row still names the old key",
                    extra={
                        "inconsistency": "orphan_blob",
                        "asset_id": asset_id,
                        "storage_key": new_key,
                        "stale_storage_key": old_key,
                    },
                )
                logger.error(
                    "Metadata update failed after old blob was deleted; row points at a missing blob",
                    extra={"inconsistency": "dangling_reference", "asset_id": asset_id, "storage_key": old_key},
                )
                raise

            event.message = "Asset metadata updated successfully"
            logger.info("Asset %s replaced by user %s", asset_id, actor.id)
            return asset

    async def delete(self, actor: Actor, asset_id: int) -> dict[str, str]:
        async with self._tracked(actor, "delete_asset", asset_id) as event:
            # Non-admins only ever see their own rows here.
            scope = None if actor.is_admin else actor.id
            asset = await self.repository.get_asset(asset_id, owner_id=scope, for_update=True)
            if asset is None:
                await self.repository.rollback()
                if scope is not None and await self.repository.get_asset(asset_id) is not None:
                    logger.warning("User %s denied delete on asset %s", actor.id, asset_id)
                    raise ForbiddenError("Asset not owned by you")
                raise NotFoundError("Asset not found")
            if not can_perform(actor, asset.owner_id, Action.delete):
                await self.repository.rollback()
                raise ForbiddenError("Asset not owned by you")

            storage_key = asset.storage_key
            try:
                await self._delete_blob(storage_key)
            except StorageFailureError:
                await self.repository.rollback()
                raise

            try:
                await self.repository.delete_asset(asset)
            except RepositoryFailureError:
                logger.error(
                    "Metadata delete failed after blob removal; row points at a missing blob",
                    extra={"inconsistency": "dangling_reference", "asset_id": asset_id, "storage_key": storage_key},
                )
                raise

            event.message = "Asset deleted successfully"
            logger.info("Asset %s deleted by user %s", asset_id, actor.id)
            return {"message": "Asset deleted successfully"}

    async def share(self, actor: Actor, asset_id: int, grantee_id: int | None) -> ShareOutcome:
        async with self._tracked(actor, "share_asset", asset_id) as event:
            if grantee_id is None:
                raise InvalidInputError("shared_with_user_id is required")

            asset = await self.repository.get_asset(asset_id)
            if asset is None:
                raise NotFoundError("Asset not found")
            if not can_perform(actor, asset.owner_id, Action.share):
                logger.warning("User %s denied share on asset %s", actor.id, asset_id)
                raise ForbiddenError("Unauthorized: Only owner or admin can share this asset")
            if await self.repository.get_user(grantee_id) is None:
                raise NotFoundError("User not found")

            existing = await self.repository.get_grant(asset_id, grantee_id)
            if existing is not None:
                event.message = "Asset already shared with this user"
                return ShareOutcome(grant=existing, created=False, message=event.message)

            grant, created = await self.repository.create_grant(asset_id, grantee_id)
            event.message = "Asset shared successfully" if created else "Asset already shared with this user"
            logger.info("Asset %s shared by user %s with user %s", asset_id, actor.id, grantee_id)
            return ShareOutcome(grant=grant, created=created, message=event.message)

    async def get_shared(self, actor: Actor, asset_id: int) -> Asset:
        async with self._tracked(actor, "get_shared_asset", asset_id) as event:
            if actor.is_admin:
                asset = await self.repository.get_asset(asset_id)
                has_grant = False
            else:
                asset = await self.repository.get_shared_asset(asset_id, actor.id)
                has_grant = asset is not None

            # Absent and not-shared look the same from outside.
            owner_id = asset.owner_id if asset is not None else None
            if asset is None or not can_perform(actor, owner_id, Action.view, has_grant=has_grant):
                logger.warning("User %s denied shared access to asset %s", actor.id, asset_id)
                raise ForbiddenError(SHARED_ACCESS_DENIED)

            event.message = "Shared asset retrieved successfully"
            return asset

    async def list_shared_with_actor(self, actor: Actor) -> list[SharedAssetRow]:
        async with self._tracked(actor, "list_shared_assets") as event:
            rows = await self.repository.list_shared_with(actor.id)
            event.message = "Shared assets retrieved successfully"
            logger.info("Fetched %s shared assets for user %s", len(rows), actor.id)
            return rows
