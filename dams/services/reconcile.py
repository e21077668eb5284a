from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from dams.services.assets import STORAGE_KEY_PREFIX
from dams.services.repository import AssetRepository
from dams.services.storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconcileReport:
    dangling: list[tuple[int, str]] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)
    checked_rows: int = 0
    checked_blobs: int = 0

    @property
    def consistent(self) -> bool:
        return not self.dangling and not self.orphans

    def as_dict(self) -> dict:
        return {
            "dangling": [{"asset_id": a, "storage_key": k} for a, k in self.dangling],
            "orphans": list(self.orphans),
            "checked_rows": self.checked_rows,
            "checked_blobs": self.checked_blobs,
        }


async def reconcile(
    repository: AssetRepository,
    blob_store: BlobStore,
    *,
    prefix: str = STORAGE_KEY_PREFIX,
) -> ReconcileReport:
    """Compare metadata rows against stored blobs and report mismatches.

    Read-only: findings are logged and returned, nothing is repaired.
    Blobs are listed before rows are scanned, so a blob written mid-sweep
    is either missing from the listing or has its row seen by the scan.
    """
    report = ReconcileReport()
    referenced: set[str] = set()

    keys = await asyncio.to_thread(lambda: list(blob_store.iter_keys(prefix)))

    async for asset_id, storage_key in repository.iter_storage_keys():
        report.checked_rows += 1
        referenced.add(storage_key)
        if not await asyncio.to_thread(blob_store.exists, storage_key):
            report.dangling.append((asset_id, storage_key))
            logger.error(
                "Asset %s references missing blob %s",
                asset_id,
                storage_key,
                extra={"inconsistency": "dangling_reference", "asset_id": asset_id, "storage_key": storage_key},
            )

    for key in keys:
        report.checked_blobs += 1
        if key not in referenced:
            report.orphans.append(key)
            logger.error(
                "Blob %s has no referring asset row",
                key,
                extra={"inconsistency": "orphan_blob", "storage_key": key},
            )

    logger.info(
        "Reconcile finished rows=%s blobs=%s dangling=%s orphans=%s",
        report.checked_rows,
        report.checked_blobs,
        len(report.dangling),
        len(report.orphans),
    )
    return report
