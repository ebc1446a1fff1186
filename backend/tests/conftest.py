"""Shared fixtures: isolated in-memory database, fake clock, fake remote and probe."""
import asyncio
import os
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from gymsync.models.base import Base  # noqa: E402
import gymsync.models.record  # noqa: F401, E402
import gymsync.models.identity  # noqa: F401, E402
import gymsync.models.calendar  # noqa: F401, E402
import gymsync.models.body_weight  # noqa: F401, E402
from gymsync.core.exceptions import RemoteAPIError  # noqa: E402
from gymsync.services.identity import IdentityMapper  # noqa: E402
from gymsync.services.local_store import LocalRecordStore  # noqa: E402
from gymsync.services.reachability import ReachabilityMonitor  # noqa: E402
from gymsync.services.offline_sync import RetryPolicy, SyncEngine  # noqa: E402


class FakeClock:
    """Virtual time: sleep() advances now() instead of waiting."""

    def __init__(self, now: datetime):
        self._now = now
        self._mono = 0.0
        self.sleeps = []

    def now(self) -> datetime:
        return self._now

    def today(self):
        return self._now.date()

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._mono += seconds

    def set(self, now: datetime) -> None:
        self._now = now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class FakeProbe:
    def __init__(self, online: bool = True):
        self.online = online
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.online


class FakeRemote:
    """In-process stand-in for the remote backend with create-or-get semantics."""

    def __init__(self):
        self.pushes = []
        self.updates = []
        self.sessions = []
        self.fail_ids = set()
        self._by_key = {}
        self._next_id = 100

    @property
    def calls(self) -> int:
        return len(self.pushes) + len(self.updates)

    async def push(self, collection, payload, idempotency_key):
        # Yield so concurrent callers can interleave
        await asyncio.sleep(0)
        self.pushes.append((collection, idempotency_key, payload))
        if idempotency_key in self.fail_ids:
            raise RemoteAPIError("boom", status_code=503)
        if idempotency_key not in self._by_key:
            self._by_key[idempotency_key] = str(self._next_id)
            self._next_id += 1
        return self._by_key[idempotency_key]

    async def update(self, collection, remote_id, payload):
        await asyncio.sleep(0)
        self.updates.append((collection, remote_id, payload))

    async def list_sessions(self, user_id):
        return list(self.sessions)


@pytest.fixture()
def session_factory():
    """Isolated in-memory SQLite database shared across threads for one test."""
    test_engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def clock():
    # Wednesday
    return FakeClock(datetime(2024, 5, 15, 9, 30))


@pytest.fixture()
def store(session_factory, clock):
    return LocalRecordStore(session_factory=session_factory, clock=clock)


@pytest.fixture()
def identity(session_factory):
    return IdentityMapper(session_factory=session_factory)


@pytest.fixture()
def probe():
    return FakeProbe(online=True)


@pytest.fixture()
def monitor(probe, clock):
    return ReachabilityMonitor(probe=probe, ttl_seconds=10, clock=clock)


@pytest.fixture()
def remote():
    return FakeRemote()


@pytest.fixture()
def engine(store, identity, monitor, remote, clock):
    return SyncEngine(
        store=store,
        identity=identity,
        reachability_monitor=monitor,
        remote=remote,
        clock=clock,
        retry_policy=RetryPolicy(attempts=3, initial_delay=1.0, backoff=2.0, max_delay=4.0),
        max_concurrency=4,
    )


@pytest.fixture()
def sample_session():
    return {
        "split_id": "split-1",
        "day_index": 0,
        "day_name": "Push Day",
        "exercises": [
            {
                "exercise_id": "bench-press",
                "exercise_name": "Bench Press",
                "sets": [
                    {"set_index": 0, "reps": 8, "weight": 80, "completed": True},
                    {"set_index": 1, "reps": 8, "weight": 80, "completed": True},
                ],
            }
        ],
    }
