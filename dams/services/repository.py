from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dams.core.errors import RepositoryFailureError
from dams.models.asset import Asset, ShareGrant
from dams.models.common import utcnow
from dams.models.user import User

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = {"filename", "storage_key", "location_ref", "mime_type", "size_bytes"}


@dataclass(slots=True)
class SharedAssetRow:
    asset: Asset
    owner_name: str | None
    owner_email: str
    shared_at: datetime


class AssetRepository:
    """Asset and share-grant persistence over one ``AsyncSession``.

    Every method either commits its own unit of work or leaves the session
    inside the transaction opened by a locking read (``for_update=True``),
    which the next mutating call commits. Driver errors are rolled back and
    re-raised as ``RepositoryFailureError``.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _fail(self, action: str, exc: SQLAlchemyError) -> RepositoryFailureError:
        logger.warning("Metadata store %s failed: %s", action, exc)
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback after failed %s also failed", action)
        return RepositoryFailureError(f"Metadata store {action} failed")

    async def rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as exc:
            raise await self._fail("rollback", exc) from exc

    async def get_user(self, user_id: int) -> User | None:
        try:
            return (await self.db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise await self._fail("user lookup", exc) from exc

    async def get_asset(
        self,
        asset_id: int,
        *,
        owner_id: int | None = None,
        for_update: bool = False,
    ) -> Asset | None:
        stmt = select(Asset).where(Asset.id == asset_id)
        if owner_id is not None:
            stmt = stmt.where(Asset.owner_id == owner_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        try:
            return (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise await self._fail("asset lookup", exc) from exc

    async def list_assets(self, *, owner_id: int | None = None) -> list[Asset]:
        stmt = select(Asset).order_by(Asset.created_at.desc(), Asset.id.desc())
        if owner_id is not None:
            stmt = stmt.where(Asset.owner_id == owner_id)
        try:
            return list((await self.db.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise await self._fail("asset listing", exc) from exc

    async def iter_storage_keys(self, batch_size: int = 500) -> AsyncIterator[tuple[int, str]]:
        last_id = 0
        while True:
            stmt = (
                select(Asset.id, Asset.storage_key)
                .where(Asset.id > last_id)
                .order_by(Asset.id)
                .limit(batch_size)
            )
            try:
                rows = (await self.db.execute(stmt)).all()
            except SQLAlchemyError as exc:
                raise await self._fail("asset scan", exc) from exc
            if not rows:
                return
            for asset_id, storage_key in rows:
                yield asset_id, storage_key
            last_id = rows[-1][0]

    async def create_asset(
        self,
        *,
        owner_id: int,
        filename: str,
        storage_key: str,
        location_ref: str,
        mime_type: str,
        size_bytes: int,
    ) -> Asset:
        row = Asset(
            owner_id=owner_id,
            filename=filename,
            storage_key=storage_key,
            location_ref=location_ref,
            mime_type=mime_type,
            size_bytes=size_bytes,
        )
        self.db.add(row)
        try:
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as exc:
            raise await self._fail("insert", exc) from exc
        return row

    async def update_asset(self, row: Asset, **fields: object) -> Asset:
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Immutable or unknown asset fields: {sorted(unknown)}")
        for name, value in fields.items():
            setattr(row, name, value)
        row.updated_at = utcnow()
        try:
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as exc:
            # StaleDataError lands here when another writer bumped the version.
            raise await self._fail("update", exc) from exc
        return row

    async def delete_asset(self, row: Asset) -> None:
        # Grants go with the row via ON DELETE CASCADE.
        try:
            await self.db.delete(row)
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("delete", exc) from exc

    async def get_grant(self, asset_id: int, grantee_id: int) -> ShareGrant | None:
        stmt = select(ShareGrant).where(
            and_(ShareGrant.asset_id == asset_id, ShareGrant.grantee_id == grantee_id)
        )
        try:
            return (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise await self._fail("grant lookup", exc) from exc

    async def create_grant(self, asset_id: int, grantee_id: int) -> tuple[ShareGrant, bool]:
        """Insert a grant; returns ``(grant, created)``.

        A concurrent insert of the same pair trips the unique constraint, in
        which case the winner's row is returned with ``created=False``.
        """
        row = ShareGrant(asset_id=asset_id, grantee_id=grantee_id)
        self.db.add(row)
        try:
            await self.db.commit()
            await self.db.refresh(row)
            return row, True
        except IntegrityError:
            await self.db.rollback()
        except SQLAlchemyError as exc:
            raise await self._fail("grant insert", exc) from exc

        existing = await self.get_grant(asset_id, grantee_id)
        if existing is None:
            # Constraint violation was not the pair; e.g. the asset vanished.
            raise RepositoryFailureError("Metadata store grant insert failed")
        return existing, False

    async def get_shared_asset(self, asset_id: int, grantee_id: int) -> Asset | None:
        stmt = (
            select(Asset)
            .join(ShareGrant, ShareGrant.asset_id == Asset.id)
            .where(and_(ShareGrant.grantee_id == grantee_id, Asset.id == asset_id))
        )
        try:
            return (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise await self._fail("shared asset lookup", exc) from exc

    async def list_shared_with(self, grantee_id: int) -> list[SharedAssetRow]:
        stmt = (
            select(Asset, User.name, User.email, ShareGrant.created_at)
            .join(ShareGrant, ShareGrant.asset_id == Asset.id)
            .join(User, User.id == Asset.owner_id)
            .where(ShareGrant.grantee_id == grantee_id)
            .order_by(ShareGrant.created_at.desc(), ShareGrant.id.desc())
        )
        try:
            rows = (await self.db.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise await self._fail("shared asset listing", exc) from exc
        return [
            SharedAssetRow(asset=asset, owner_name=name, owner_email=email, shared_at=shared_at)
            for asset, name, email, shared_at in rows
        ]
