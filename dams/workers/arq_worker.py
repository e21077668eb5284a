from __future__ import annotations

from arq.connections import RedisSettings
from arq.cron import cron

from dams.core.config import settings
from dams.core.logging import configure_logging
from dams.db.session import SessionLocal
from dams.services.reconcile import reconcile
from dams.services.repository import AssetRepository
from dams.services.storage import S3BlobStore


async def startup(ctx) -> None:
    configure_logging()
    ctx["blob_store"] = S3BlobStore.from_settings(settings)


async def reconcile_assets_job(ctx) -> dict:
    blob_store = ctx.get("blob_store") or S3BlobStore.from_settings(settings)
    async with SessionLocal() as db:
        report = await reconcile(AssetRepository(db), blob_store)
    return report.as_dict()


def reconcile_minutes(interval: int | None) -> set[int]:
    """Cron minutes for the sweep.

    arq schedules by minute-of-hour, so only intervals that divide 60 give an
    even cadence; anything else is rounded down to the nearest one that does.
    """
    wanted = min(max(int(interval or 60), 1), 60)
    step = max(d for d in range(1, wanted + 1) if 60 % d == 0)
    return set(range(0, 60, step))


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    on_startup = startup
    functions = [reconcile_assets_job]
    cron_jobs = [
        cron(
            reconcile_assets_job,
            minute=reconcile_minutes(settings.reconcile_interval_minutes),
            run_at_startup=False,
        )
    ]
