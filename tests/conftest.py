from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import asynccontextmanager

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dams.core.errors import StorageFailureError
from dams.db.base import Base
from dams.models import Role, User
from dams.services.access import Actor
from dams.services.assets import AssetService
from dams.services.repository import AssetRepository

U1 = Actor(id=1, role=Role.user)
U2 = Actor(id=2, role=Role.user)
U3 = Actor(id=3, role=Role.user)
ADMIN = Actor(id=4, role=Role.admin)
VIEWER = Actor(id=5, role=Role.viewer)

SEED_USERS = [
    (U1, "Uma One", "u1@example.com"),
    (U2, "Ugo Two", "u2@example.com"),
    (U3, "Ula Three", "u3@example.com"),
    (ADMIN, "Ada Admin", "admin@example.com"),
    (VIEWER, "Vic Viewer", "viewer@example.com"),
]


class InMemoryBlobStore:
    """Dict-backed blob store with switchable failures."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_put = False
        self.fail_delete = False
        self.puts: list[str] = []
        self.deletes: list[str] = []

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail_put:
            raise StorageFailureError(f"Failed to write object {key}")
        self.puts.append(key)
        self.objects[key] = (data, content_type)
        return f"memory://blobs/{key}"

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StorageFailureError(f"Failed to delete object {key}")
        self.deletes.append(key)
        self.objects.pop(key, None)

    def get(self, key: str) -> tuple[bytes, str]:
        try:
            return self.objects[key]
        except KeyError as exc:
            raise FileNotFoundError(key) from exc

    def exists(self, key: str) -> bool:
        return key in self.objects

    def iter_keys(self, prefix: str = "") -> Iterator[str]:
        return iter(sorted(k for k in self.objects if k.startswith(prefix)))


class RecordingActivity:
    def __init__(self) -> None:
        self.events: list[dict] = []

    async def record(self, **kwargs) -> None:
        self.events.append(kwargs)

    def actions(self, status: str | None = None) -> list[str]:
        return [e["action"] for e in self.events if status is None or e["status"] == status]


class Harness:
    """Runs one async scenario against a fresh in-memory SQLite database."""

    def __init__(self, blob_store: InMemoryBlobStore, activity: RecordingActivity) -> None:
        self.blob_store = blob_store
        self.activity = activity
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self.repository_cls: type[AssetRepository] = AssetRepository

    def run(self, scenario: Callable[[Harness], Awaitable[object]]) -> object:
        return asyncio.run(self._run(scenario))

    async def _run(self, scenario: Callable[[Harness], Awaitable[object]]) -> object:
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_fks(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self.session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
            async with self.session_factory() as db:
                for actor, name, email in SEED_USERS:
                    db.add(User(id=actor.id, name=name, email=email, role=actor.role))
                await db.commit()
            return await scenario(self)
        finally:
            await engine.dispose()

    @asynccontextmanager
    async def service(self) -> AsyncIterator[AssetService]:
        assert self.session_factory is not None
        async with self.session_factory() as db:
            yield AssetService(self.repository_cls(db), self.blob_store, self.activity)

    @asynccontextmanager
    async def repository(self) -> AsyncIterator[AssetRepository]:
        assert self.session_factory is not None
        async with self.session_factory() as db:
            yield AssetRepository(db)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def activity() -> RecordingActivity:
    return RecordingActivity()


@pytest.fixture
def harness(blob_store: InMemoryBlobStore, activity: RecordingActivity) -> Harness:
    return Harness(blob_store, activity)
