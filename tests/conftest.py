import asyncio
import logging

import pytest

from combotree.core.config import Config, SimulationArgs
from combotree.core.schema import DimensionSchema
from combotree.core.types import Status
from combotree.engine.scheduler import Scheduler
from combotree.session import Session


class RecordingSink:
    """
    Fake change sink that records every notification in order.

    Each call is stored as a (method, argument) tuple; render_ancestors_of
    records the leaf id.
    """

    def __init__(self):
        self.calls: list[tuple[str, str | None]] = []

    def render_node(self, node_id: str) -> None:
        self.calls.append(("render_node", node_id))

    def render_ancestors_of(self, leaf) -> None:
        self.calls.append(("render_ancestors_of", leaf.id))

    def update_summary(self) -> None:
        self.calls.append(("update_summary", None))

    def update_detail(self, node_id: str) -> None:
        self.calls.append(("update_detail", node_id))

    def of(self, method: str) -> list:
        return [arg for name, arg in self.calls if name == method]

    def clear(self) -> None:
        self.calls.clear()


class FakeTask:
    """
    Fake leaf task for testing the scheduler without real work.

    Outcomes are scripted per leaf id (a Status, any other value, or an
    exception instance to raise); unscripted leaves resolve to `default`.
    With gated=True every call blocks until release() is called.
    Tracks peak concurrency across calls.
    """

    def __init__(
        self,
        outcomes: dict | None = None,
        default=Status.PASS,
        delay: float = 0.01,
        gated: bool = False,
    ):
        self.outcomes = outcomes or {}
        self.default = default
        self.delay = delay
        self.gated = gated
        self._gate = asyncio.Event()
        self.started: list[str] = []
        self.finished: list[str] = []
        self.statuses_seen: dict[str, dict] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, leaf) -> Status:
        self.started.append(leaf.id)
        self.statuses_seen[leaf.id] = dict(leaf.results)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gated:
                await self._gate.wait()
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
            self.finished.append(leaf.id)

        outcome = self.outcomes.get(leaf.id, self.default)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def release(self) -> None:
        self._gate.set()

    async def wait_started(self, n: int) -> None:
        while len(self.started) < n:
            await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear the process-wide active run and logger tweaks between tests."""
    yield
    Scheduler._active = None
    logger = logging.getLogger("combotree")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def schema() -> DimensionSchema:
    """env x platform x action: 2 x 3 x 2 = 12 leaves."""
    return DimensionSchema.parse(
        {
            "dimensions": [
                {"name": "Testing Env", "key": "env", "values": ["local", "remote"]},
                {"name": "Platform", "key": "platform", "values": ["native", "docker", "k8s"]},
                {"name": "Action", "key": "action", "values": ["get", "post"]},
            ]
        }
    )


@pytest.fixture
def small_schema() -> DimensionSchema:
    """env x platform: 2 x 2 = 4 leaves."""
    return DimensionSchema.parse(
        {
            "dimensions": [
                {"name": "Testing Env", "key": "env", "values": ["local", "remote"]},
                {"name": "Platform", "key": "platform", "values": ["native", "docker"]},
            ]
        }
    )


@pytest.fixture
def six_leaf_schema() -> DimensionSchema:
    """env x platform: 2 x 3 = 6 leaves."""
    return DimensionSchema.parse(
        {
            "dimensions": [
                {"name": "Testing Env", "key": "env", "values": ["local", "remote"]},
                {"name": "Platform", "key": "platform", "values": ["native", "docker", "k8s"]},
            ]
        }
    )


@pytest.fixture
def fast_settings() -> Config:
    """Config whose simulated task finishes instantly and always passes."""
    return Config(
        concurrency_limit=2,
        simulation=SimulationArgs(min_delay=0, max_delay=0, pass_rate=1.0, log_lines=1, seed=1),
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def recording_sink_factory():
    """Factory fixture for tests that need more than one RecordingSink."""
    return RecordingSink


@pytest.fixture
def session(schema, sink, fast_settings) -> Session:
    return Session.create(schema, sink=sink, settings=fast_settings)


@pytest.fixture
def fake_task_factory():
    """Factory fixture to create FakeTask with custom outcomes."""
    return FakeTask
