import logging

import pytest

from goldnonce.network.local import LocalBroker, LocalQueue

PAYLOAD = "COMSM0010cloud"


def pytest_collection_modifyitems(config, items):
    """Automatically add a timeout to tests that block on queues or threads."""
    keywords = {"queue", "worker", "broker", "aggregator", "session", "cli"}
    for item in items:
        path = str(item.fspath)
        name = item.name
        if any(k in path for k in keywords) or any(k in name for k in keywords):
            item.add_marker(pytest.mark.timeout(20))


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0, step: float = 0.0) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> float:
        t = self.now
        self.now += self.step
        return t

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def payload() -> str:
    """Payload used across tests."""
    return PAYLOAD


@pytest.fixture
def broker() -> LocalBroker:
    b = LocalBroker(default_visibility=30.0)
    yield b
    b.close()


@pytest.fixture
def input_queue(broker) -> LocalQueue:
    return broker.queue("INPUT_QUEUE")


@pytest.fixture
def output_queue(broker) -> LocalQueue:
    return broker.queue("OUTPUT_QUEUE")


@pytest.fixture(autouse=True)
def _capture_info_logs(caplog):
    caplog.set_level(logging.INFO)
