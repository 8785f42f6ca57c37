"""Shared fixtures: a controllable clock and a store on a temporary SQLite file."""

import pytest
from httpx import ASGITransport, AsyncClient

from potty_timer.controller import TimerController
from potty_timer.server import create_app
from potty_timer.store import TimerStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Wall clock in epoch milliseconds that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def seconds(self) -> float:
        return self.now / 1000

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'timers.db'}"


@pytest.fixture
async def store(db_url, clock):
    s = TimerStore(db_url, clock=clock.seconds)
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def controller(store, clock):
    return TimerController(store, clock=clock)


@pytest.fixture
def app(store, clock):
    return create_app(store=store, tick_interval=0, clock=clock)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
