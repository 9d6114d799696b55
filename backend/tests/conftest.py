import asyncio
from dataclasses import dataclass
import uuid

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from identity_api.bootstrap import bootstrap_tenant
from identity_api.core.config import Settings
from identity_api.core.database import create_engine_and_sessionmaker, create_tables
from identity_api.main import create_app
from identity_api.services.container import build_services


@dataclass
class Seed:
    tenant_a: uuid.UUID
    application_a: uuid.UUID
    key_a: str
    tenant_b: uuid.UUID
    application_b: uuid.UUID
    key_b: str


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}",
        SECRET_KEY="test-secret-key-0123456789-abcdefghijklmnop",
        BCRYPT_ROUNDS=4,
        RATE_LIMIT_ENABLED=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def services(settings):
    return build_services(settings)


@pytest.fixture
def run_db(settings):
    """Run ``fn(session)`` against the test database from synchronous test code."""

    def _run(fn):
        async def _go():
            engine, session_factory = create_engine_and_sessionmaker(settings.SQLALCHEMY_DATABASE_URI)
            try:
                await create_tables(engine)
                async with session_factory() as session:
                    return await fn(session)
            finally:
                await engine.dispose()

        return asyncio.run(_go())

    return _run


@pytest.fixture
def seed(run_db, services):
    async def _seed(session):
        app_a, tenant_a, key_a = await bootstrap_tenant(session, services.api_keys, "acme", "Acme", "acme.com")
        app_b, tenant_b, key_b = await bootstrap_tenant(session, services.api_keys, "globex", "Globex", "globex.com")
        return Seed(tenant_a.id, app_a.id, key_a, tenant_b.id, app_b.id, key_b)

    return run_db(_seed)


@pytest.fixture
def client(settings, seed):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def session(settings):
    engine, session_factory = create_engine_and_sessionmaker(settings.SQLALCHEMY_DATABASE_URI)
    await create_tables(engine)
    async with session_factory() as db:
        yield db
    await engine.dispose()
