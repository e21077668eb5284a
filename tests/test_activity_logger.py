import asyncio

from conftest import ADMIN, U1, U2
from dams.services.activity import ActivityLogger


def test_record_and_list_scoped_by_role(harness) -> None:
    async def scenario(h):
        logger = ActivityLogger(h.session_factory)
        async with h.service() as svc:
            asset = await svc.upload(U1, b"x", "notes.txt", "text/plain")
        await logger.record(user_id=U1.id, action="upload", asset_id=asset.id, message="File uploaded successfully")
        await logger.record(user_id=U2.id, action="get_shared_asset", asset_id=asset.id, status="failed", message="nope")
        return asset, await logger.list_for_actor(U1), await logger.list_for_actor(ADMIN)

    asset, mine, everything = harness.run(scenario)

    assert [e.action for e in mine] == ["upload"]
    assert mine[0].user_name == "Uma One"
    assert mine[0].asset_name == "notes.txt"
    assert mine[0].asset_id == asset.id
    assert [e.action for e in everything] == ["get_shared_asset", "upload"]
    assert everything[0].status == "failed"


def test_activity_survives_asset_deletion(harness) -> None:
    async def scenario(h):
        logger = ActivityLogger(h.session_factory)
        async with h.service() as svc:
            asset = await svc.upload(U1, b"x", "gone.txt", "text/plain")
        await logger.record(user_id=U1.id, action="upload", asset_id=asset.id)
        async with h.service() as svc:
            await svc.delete(U1, asset.id)
        return asset, await logger.list_for_actor(U1)

    asset, entries = harness.run(scenario)

    assert entries[0].asset_id == asset.id
    assert entries[0].asset_name is None


def test_record_swallows_store_errors(caplog) -> None:
    def broken_factory():
        raise RuntimeError("db down")

    asyncio.run(ActivityLogger(broken_factory).record(user_id=1, action="upload"))

    assert "Error recording activity" in caplog.text
