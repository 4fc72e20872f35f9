"""
Shared fixtures: a throwaway SQLite Order Store per test, the in-memory
collaborators and an HTTP client bound to the FastAPI app.
"""

import os

# Must be set before order_service reads its settings
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./order_service_test.db"
os.environ["NOTIFY_CUSTOMER_ON_STATUS_CHANGE"] = "true"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from order_service.core.config import Settings
from order_service.database import Base, get_db
from order_service.repository import SqlAlchemyOrderRepository
from order_service.services.directory import MockDirectoryService, get_directory_service
from order_service.services.events import MockEventPublisher, get_event_publisher
from order_service.services.ledger import MockLedgerService, get_ledger_service
from order_service.services.notifications import MockNotificationService
from order_service.services.orchestrator import OrderOrchestrator

import order_service.models  # noqa: F401


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env_mode="development",
        transition_policy="forward_only",
        outbox_max_attempts=3,
        reconcile_grace_seconds=0,
        reconcile_batch_size=50,
        enrichment_concurrency=4,
        notify_customer_on_status_change=True,
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def directory() -> MockDirectoryService:
    return MockDirectoryService()


@pytest.fixture
def ledger() -> MockLedgerService:
    return MockLedgerService()


@pytest.fixture
def notifications() -> MockNotificationService:
    return MockNotificationService()


@pytest.fixture
def publisher(notifications) -> MockEventPublisher:
    return MockEventPublisher(notification_service=notifications)


@pytest.fixture
def make_orchestrator(directory, ledger, publisher, settings):
    """Build an orchestrator on a given session, sharing the collaborators."""

    def factory(session: AsyncSession, **overrides) -> OrderOrchestrator:
        return OrderOrchestrator(
            repository=SqlAlchemyOrderRepository(session),
            directory=overrides.get("directory", directory),
            ledger=overrides.get("ledger", ledger),
            publisher=overrides.get("publisher", publisher),
            settings=overrides.get("settings", settings),
        )

    return factory


@pytest.fixture
def orchestrator(session, make_orchestrator) -> OrderOrchestrator:
    return make_orchestrator(session)


@pytest.fixture
async def client(session_maker, directory, ledger, publisher, settings, monkeypatch):
    from order_service import main

    async def override_get_db():
        async with session_maker() as session:
            yield session

    monkeypatch.setattr(main, "settings", settings)
    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[get_directory_service] = lambda: directory
    main.app.dependency_overrides[get_ledger_service] = lambda: ledger
    main.app.dependency_overrides[get_event_publisher] = lambda: publisher

    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    main.app.dependency_overrides.clear()
