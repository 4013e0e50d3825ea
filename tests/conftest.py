"""Shared pytest fixtures."""

import asyncio
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import arvault.db.models  # noqa: F401
from arvault.auth.tokens import create_access_token
from arvault.config import DatabaseConfig, RateLimitConfig, Settings, StorageConfig
from arvault.db.base import Base
from arvault.db.models import Asset, Share, User
from arvault.lib.hooks import hooks
from arvault.lib.storage import LocalObjectStore

SECRET = "test-secret"


@pytest.fixture
def clean_hooks():
    """Save and restore hooks state around a test."""
    original_actions = {name: list(handlers) for name, handlers in hooks._actions.items()}
    yield
    hooks._actions.clear()
    hooks._actions.update(original_actions)


# ---------------------------------------------------------------------------
# In-memory database for service-level tests
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    async def _make(username="alice", is_admin=False, max_models=3, dashboard_content=""):
        user = User(
            username=username,
            email=f"{username}@example.com",
            is_admin=is_admin,
            max_models=max_models,
            dashboard_content=dashboard_content,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_asset(db_session):
    counter = {"n": 0}

    async def _make(owner, display_name="scene.glb", category="model", **fields):
        counter["n"] += 1
        ext = display_name.rsplit(".", 1)[-1]
        asset = Asset(
            key=fields.pop("key", f"{category}/{1700000000000 + counter['n']}_{uuid4().hex}.{ext}"),
            owner_id=owner.id,
            display_name=display_name,
            category=category,
            content_type=fields.pop("content_type", "model/gltf-binary"),
            size_bytes=fields.pop("size_bytes", 10),
            **fields,
        )
        db_session.add(asset)
        await db_session.commit()
        await db_session.refresh(asset)
        return asset

    return _make


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def read_object(store):
    """Drain an object's byte stream into one bytes value."""

    async def _read(key: str) -> bytes:
        return b"".join([chunk async for chunk in store.stream(key)])

    return _read


# ---------------------------------------------------------------------------
# Application fixtures for HTTP tests
# ---------------------------------------------------------------------------


@pytest.fixture
def app_settings(tmp_path):
    return Settings(
        secret_key=SECRET,
        db=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}", create_all=True),
        storage=StorageConfig(backend="local", local_path=str(tmp_path / "store")),
        rate_limit=RateLimitConfig(enabled=False),
    )


@pytest.fixture
def seed_db(app_settings):
    """Create the schema and insert rows into the app database before startup."""

    def _seed(*rows):
        async def _run():
            engine = create_async_engine(app_settings.db.url)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            maker = async_sessionmaker(engine, expire_on_commit=False)
            async with maker() as session:
                session.add_all(rows)
                await session.commit()
            await engine.dispose()

        asyncio.run(_run())
        return rows

    return _seed


@pytest.fixture
def bearer():
    """Authorization headers carrying an access token for a user."""

    def _headers(user_id: UUID, is_admin: bool = False, secret: str = SECRET) -> dict[str, str]:
        token = create_access_token(user_id, secret, 3600, is_admin=is_admin)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def new_user():
    """Unsaved user with its id assigned up front."""

    def _make(username="alice", **fields) -> User:
        return User(id=uuid4(), username=username, email=f"{username}@example.com", **fields)

    return _make


@pytest.fixture
def new_share():
    def _make(owner: User, **fields) -> Share:
        return Share(id=uuid4(), owner_id=owner.id, content_snapshot="# dashboard", **fields)

    return _make
