"""Shared fixtures: a controllable clock, both store backends and an API client."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from consensus_ledger.core import (
    Settings,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)
from consensus_ledger.main import create_app
from consensus_ledger.services import (
    DecisionService,
    LifecycleManager,
    ReminderDeliveryError,
    ReminderNotifier,
    ReminderTask,
)
from consensus_ledger.store import EntityStore, MemoryEntityStore, NewDecision, SqlEntityStore

# Monday
START = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    @property
    def today(self) -> date:
        return self.now.date()


class RecordingNotifier(ReminderNotifier):
    """Remembers every reminder; fails for the users it is told to."""

    def __init__(self, failing_users: set[str] | None = None):
        self.sent: list[ReminderTask] = []
        self.failing_users = failing_users or set()

    async def send(self, task: ReminderTask) -> None:
        if task.user_id in self.failing_users:
            raise ReminderDeliveryError(f"channel unavailable for {task.user_id}")
        self.sent.append(task)


def new_decision(deadline: date, policy: str = "simple_majority", name: str = "Adopt RFC-42") -> NewDecision:
    return NewDecision(
        name=name,
        proposal="Move the build to the new CI runners",
        success_policy=policy,
        deadline=deadline,
        channel_ref="C-eng",
        creator_ref="U-alice",
    )


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def memory_store(clock: FixedClock) -> MemoryEntityStore:
    return MemoryEntityStore(clock=clock)


@asynccontextmanager
async def sqlite_store(path, clock: FixedClock) -> AsyncGenerator[SqlEntityStore, None]:
    settings = Settings(database_url=f"sqlite:///{path}")
    engine = create_engine(settings)
    await init_db(engine)
    try:
        yield SqlEntityStore(create_session_factory(engine), clock=clock)
    finally:
        await close_db(engine)


@pytest.fixture(params=["memory", "sql"])
async def store(request, tmp_path, clock: FixedClock) -> AsyncGenerator[EntityStore, None]:
    """Every store-level behaviour is checked against both backends."""
    if request.param == "memory":
        yield MemoryEntityStore(clock=clock)
        return

    async with sqlite_store(tmp_path / "consensus.db", clock) as sql_store:
        yield sql_store


@pytest.fixture
def lifecycle(store: EntityStore, clock: FixedClock) -> LifecycleManager:
    return LifecycleManager(store, clock=clock)


@pytest.fixture
def service(store: EntityStore, lifecycle: LifecycleManager, clock: FixedClock) -> DecisionService:
    return DecisionService(store, lifecycle=lifecycle, clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app(memory_store: MemoryEntityStore, notifier: RecordingNotifier, clock: FixedClock) -> FastAPI:
    settings = Settings(storage_backend="memory", environment="development")
    return create_app(store=memory_store, notifier=notifier, settings=settings, clock=clock)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(failing_users={"U-2"})


@pytest.fixture
def decision_fields(clock: FixedClock):
    """Factory for creation input; the deadline defaults to three days out."""
    def _fields(policy: str = "simple_majority", deadline: date | None = None, name: str = "Adopt RFC-42"):
        return new_decision(deadline or clock.today + timedelta(days=3), policy, name)
    return _fields


@pytest.fixture
def open_decision(service: DecisionService, clock: FixedClock):
    """Factory that opens a decision through the service with registered voters."""
    async def _open(
        voters=("U-1", "U-2", "U-3"),
        policy: str = "simple_majority",
        deadline: date | None = None,
        name: str = "Adopt RFC-42",
    ):
        return await service.create_decision(
            name=name,
            proposal="Move the build to the new CI runners",
            success_policy=policy,
            channel_ref="C-eng",
            creator_ref="U-alice",
            deadline=deadline or clock.today + timedelta(days=3),
            voter_ids=voters,
        )
    return _open
