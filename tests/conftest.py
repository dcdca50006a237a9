import asyncio
import heapq
import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone

import pytest

# Keep import-time directory creation out of the working tree
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="assessment-test-"))

from fastapi.testclient import TestClient  # noqa: E402

from assessment.controller import SessionController  # noqa: E402
from assessment.main import create_app  # noqa: E402
from assessment.models import Problem, SessionStatus, TestSession  # noqa: E402
from assessment.storage import LocalStorage  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class MemorySessionStore:
    """In-memory stand-in for SessionStore with the same compare-and-set semantics."""

    def __init__(self):
        self.problems = {}
        self.sessions = {}
        self.integrity_events = []
        self.snapshots = []

    def add_problem(self, **fields) -> Problem:
        problem = Problem(id=str(uuid.uuid4()), **fields)
        self.problems[problem.id] = problem
        return problem

    def add_session(self, problem: Problem, **fields) -> TestSession:
        session = TestSession(id=str(uuid.uuid4()), problem_id=problem.id, **fields)
        self.sessions[session.id] = session
        return session

    async def get_session(self, session_id):
        # Yield like a real driver so concurrent requests interleave
        await asyncio.sleep(0)
        session = self.sessions.get(session_id)
        return session.model_copy() if session else None

    async def get_problem(self, problem_id):
        return self.problems.get(problem_id)

    async def complete_session(self, session_id, code, end_time, late):
        session = self.sessions.get(session_id)
        if session is None or session.end_time is not None:
            return False
        self.sessions[session_id] = session.model_copy(update={
            "end_time": end_time,
            "submitted_code": code,
            "status": SessionStatus.COMPLETED,
            "late": late,
        })
        return True

    async def add_integrity_event(self, event):
        event = event.model_copy(update={"id": str(uuid.uuid4())})
        self.integrity_events.append(event)
        return event

    async def list_integrity_events(self, session_id):
        events = [e for e in self.integrity_events if e.session_id == session_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def add_snapshot(self, snapshot):
        snapshot = snapshot.model_copy(update={"id": str(uuid.uuid4())})
        self.snapshots.append(snapshot)
        return snapshot

    async def list_snapshots(self, session_id):
        snapshots = [s for s in self.snapshots if s.session_id == session_id]
        return sorted(snapshots, key=lambda s: s.timestamp)

    async def annotate_snapshot(self, snapshot_id, observation):
        for i, snapshot in enumerate(self.snapshots):
            if snapshot.id == snapshot_id:
                self.snapshots[i] = snapshot.model_copy(update={"observation": observation})


async def settle(rounds: int = 25) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class VirtualClock:
    """Clock whose sleeps only complete when the test advances time."""

    def __init__(self, start: datetime) -> None:
        self._now = start
        self._sleepers = []
        self._seq = 0

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._seq += 1
        heapq.heappush(self._sleepers, (self._now + timedelta(seconds=seconds), self._seq, future))
        await future

    async def advance(self, seconds: float) -> None:
        target = self._now + timedelta(seconds=seconds)
        await settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            wake, _, future = heapq.heappop(self._sleepers)
            self._now = wake
            if not future.done():
                future.set_result(None)
                await settle()
        self._now = target


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def problem(store):
    return store.add_problem(
        title="Two Sum",
        description="Return indices of the two numbers adding up to target.",
        starter_code="function twoSum(nums, target) {\n}",
        time_limit=30,
    )


@pytest.fixture
def session(store, problem):
    return store.add_session(problem, start_time=NOW - timedelta(minutes=10))


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(snapshot_dir=tmp_path / "snapshots", report_dir=tmp_path / "reports")


@pytest.fixture
def clock():
    class FixedClock:
        def __init__(self):
            self.current = NOW

        def __call__(self):
            return self.current

    return FixedClock()


@pytest.fixture
def controller(store, storage, clock):
    return SessionController(store, storage, clock=clock, grace_seconds=30)


@pytest.fixture
def client(controller):
    with TestClient(create_app(controller)) as test_client:
        yield test_client
