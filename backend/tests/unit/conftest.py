"""Unit test conftest for setting up test environment."""

import os

# Set minimal required environment variables before importing any depsera modules
# This keeps Settings and the module-level engine away from a real database
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_USER", "test_user")
os.environ.setdefault("POSTGRES_PASSWORD", "test_password")
os.environ.setdefault("POSTGRES_DB", "test_db")
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TESTING", "true")

import json  # noqa: E402
from typing import Any, List  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event, select  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from depsera.core.host_rate_limiter import HostConcurrencyLimiter  # noqa: E402
from depsera.models import Base, Team, TeamManifestConfig  # noqa: E402
from depsera.platform.manifest.coordinator import SyncCoordinator  # noqa: E402
from depsera.platform.manifest.fetcher import ManifestFetcher  # noqa: E402
from depsera.platform.manifest.validator import ManifestValidator  # noqa: E402

MANIFEST_URL = "https://manifests.example.com/payments.json"


class FakeManifestServer:
    """Serves a mutable manifest document through an httpx MockTransport."""

    def __init__(self):
        """Start with an empty, valid manifest."""
        self.document: Any = {"version": 1, "services": []}
        self.status_code = 200
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code)
        body = self.document if isinstance(self.document, bytes) else json.dumps(self.document)
        return httpx.Response(200, content=body, headers={"content-type": "application/json"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with SAVEPOINT support and the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def create_row(session_factory):
    """Insert a row directly, outside of the sync engine."""

    async def _create(model_cls, **values):
        async with session_factory() as db:
            obj = model_cls(**values)
            db.add(obj)
            await db.commit()
            await db.refresh(obj)
            return obj

    return _create


@pytest.fixture
def fetch_rows(session_factory):
    """Load rows of a model, optionally filtered."""

    async def _fetch(model_cls, *criteria) -> list:
        async with session_factory() as db:
            result = await db.execute(select(model_cls).where(*criteria))
            return list(result.scalars().all())

    return _fetch


@pytest_asyncio.fixture
async def team(create_row):
    """Team that owns the manifest."""
    return await create_row(Team, name="Payments", key="payments")


@pytest_asyncio.fixture
async def manifest_config(create_row, team):
    """Enabled manifest configuration with the default policy."""
    return await create_row(
        TeamManifestConfig,
        team_id=team.id,
        manifest_url=MANIFEST_URL,
        is_enabled=True,
        sync_policy=None,
    )


@pytest.fixture
def manifest_server():
    """Fake manifest host."""
    return FakeManifestServer()


@pytest.fixture
def coordinator(session_factory, manifest_server):
    """Coordinator wired to the test database and the fake manifest host."""
    fetcher = ManifestFetcher(
        HostConcurrencyLimiter(max_concurrent=5),
        timeout=5.0,
        allow_private_urls=False,
        transport=manifest_server.transport,
    )
    return SyncCoordinator(
        session_factory=session_factory,
        fetcher=fetcher,
        validator=ManifestValidator(allow_private_urls=False),
    )


@pytest.fixture
def set_policy(session_factory):
    """Store a sync policy on a team's config."""

    async def _set(team_id, **policy: Any) -> None:
        async with session_factory() as db:
            result = await db.execute(
                select(TeamManifestConfig).where(TeamManifestConfig.team_id == team_id)
            )
            config = result.scalar_one()
            config.sync_policy = policy
            await db.commit()

    return _set
