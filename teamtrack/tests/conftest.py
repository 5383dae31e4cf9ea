import asyncio
import os
from typing import Any, Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set environment variables BEFORE importing settings, so that the module-level
# settings object and the default engine pick up test values.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "testsecretkey"
os.environ.pop("FIRST_OWNER_EMAIL", None)
os.environ.pop("FIRST_OWNER_PASSWORD", None)

# Import all model modules first so Base.metadata is populated.
import teamtrack.models
from teamtrack.models.base import Base

from teamtrack.core.settings import Settings
from teamtrack.auth.local import LocalIdentityProvider
from teamtrack.schemas.member import MemberCreate
from teamtrack.services.workspace import WorkspaceCoordinator
from teamtrack.store.memory import InMemoryDocumentStore
from teamtrack.store.sql import SqlDocumentStore

TEST_PASSWORD = "testpassword"


@pytest.fixture(scope="function")
def engine() -> Generator[Engine, None, None]:
    """
    Fresh in-memory SQLite database per test. StaticPool keeps one connection,
    so every session of the test sees the same database.
    """
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        SECRET_KEY="testsecretkey",
        AVATAR_URL_TEMPLATE="https://avatars.example.com/{member_id}.png",
    )


@pytest.fixture(scope="function", params=["memory", "sql"])
def store(request, session_factory: sessionmaker):
    """
    Every store-level and coordinator test runs against both store implementations.
    """
    if request.param == "memory":
        return InMemoryDocumentStore()
    return SqlDocumentStore(session_factory)


@pytest.fixture(scope="function")
def identity(session_factory: sessionmaker) -> LocalIdentityProvider:
    return LocalIdentityProvider(session_factory, secret_key="testsecretkey")


@pytest.fixture
def run() -> Callable:
    """
    Runs a coroutine to completion. Tests drive async code through this helper.
    """
    def _run(coro) -> Any:
        return asyncio.run(coro)
    return _run


@pytest.fixture(scope="function")
def make_identity(identity: LocalIdentityProvider, run: Callable) -> Callable:
    """
    Creates a login without touching the primary session (like an admin console would).
    """
    def _make(email: str, name: str = None, password: str = TEST_PASSWORD) -> str:
        async def _create():
            async with identity.secondary_session() as session:
                return await session.create_identity(email, password, display_name=name)
        return run(_create())
    return _make


@pytest.fixture(scope="function")
def coordinator(store, identity: LocalIdentityProvider, test_settings: Settings, run: Callable) -> Generator[WorkspaceCoordinator, None, None]:
    ws = WorkspaceCoordinator(store, identity, settings=test_settings)
    run(ws.start())
    yield ws
    run(ws.close())


@pytest.fixture(scope="function")
def owner(coordinator: WorkspaceCoordinator, make_identity: Callable, run: Callable):
    """
    First login of an empty workspace: the profile is bootstrapped as Owner.
    """
    make_identity("owner@example.com", "Olivia Owner")
    return run(coordinator.login("owner@example.com", TEST_PASSWORD))


@pytest.fixture(scope="function")
def mark(owner, coordinator: WorkspaceCoordinator, run: Callable) -> str:
    """
    A Member added by the Owner through the coordinator.
    """
    return run(coordinator.add_member(MemberCreate(
        name="Mark Member", email="mark@example.com", password=TEST_PASSWORD,
    )))


@pytest.fixture(scope="function")
def member_client(mark: str, store, session_factory: sessionmaker, test_settings: Settings,
                  run: Callable) -> Generator[WorkspaceCoordinator, None, None]:
    """
    A second client of the same workspace signed in as Mark. It sees the same data through subscriptions.
    """
    client = WorkspaceCoordinator(
        store, LocalIdentityProvider(session_factory, secret_key="testsecretkey"), settings=test_settings,
    )
    run(client.start())
    run(client.login("mark@example.com", TEST_PASSWORD))
    yield client
    run(client.close())
