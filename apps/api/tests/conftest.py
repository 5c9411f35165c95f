import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from holyloy_api.app import create_app  # noqa: E402
from holyloy_api.db.base import Base  # noqa: E402
from holyloy_api.db.session import get_session, get_session_factory  # noqa: E402
import holyloy_api.models  # noqa: E402,F401
from holyloy_api.models.customer import CustomerAccount  # noqa: E402
from holyloy_api.observability.rewards import get_reward_store  # noqa: E402
from holyloy_api.services.rewards import get_threshold_dispatcher  # noqa: E402


async def _create_engine(url: str):
    engine = create_async_engine(url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def session_factory():
    engine = await _create_engine("sqlite+aiosqlite:///:memory:")
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so concurrent sessions use separate connections."""

    engine = await _create_engine(f"sqlite+aiosqlite:///{tmp_path / 'rewards.db'}")
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_reward_state():
    get_reward_store().reset()
    get_threshold_dispatcher().clear()
    yield
    get_threshold_dispatcher().clear()


async def _create_customers(factory, count: int, **fields) -> list:
    async with factory() as session:
        customers = [CustomerAccount(display_name=f"customer-{index}", **fields) for index in range(count)]
        session.add_all(customers)
        await session.commit()
    return [customer.id for customer in customers]


@pytest.fixture
def create_customers():
    return _create_customers
