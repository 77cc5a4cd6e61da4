"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.calls.engine import CallLifecycleEngine
from src.calls.registry import CallRegistry


class FakeClock:
    """Settable stand-in for ``datetime.now(UTC)``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeRouter:
    """Records dispatched calls instead of pushing them."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: list = []

    async def dispatch(self, call) -> bool:
        self.sent.append(call)
        return self.result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.now(UTC).replace(microsecond=0))


@pytest.fixture
async def scheduler():
    """A running AsyncIOScheduler, shut down after the test."""
    s = AsyncIOScheduler(timezone="Asia/Seoul")
    s.start()
    yield s
    if s.running:
        s.shutdown(wait=False)


@pytest.fixture
def registry() -> CallRegistry:
    return CallRegistry()


@pytest.fixture
def router() -> FakeRouter:
    return FakeRouter()


@pytest.fixture
def engine(registry, router, scheduler, clock) -> CallLifecycleEngine:
    return CallLifecycleEngine(
        registry=registry,
        router=router,
        scheduler=scheduler,
        timezone="Asia/Seoul",
        response_timeout_seconds=60,
        retention_hours=24,
        cleanup_hour=0,
        clock=clock,
    )
