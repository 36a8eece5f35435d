"""Shared fakes for reportrelay tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from reportrelay.connectivity import ConnectivityMonitor
from reportrelay.repository import InMemoryPayloadRepository
from reportrelay.types import Config, Destination, PayloadRecord
from reportrelay.worker import DispatchWorker

ENDPOINT = "https://reports.example.test/api/item/"
TOKEN = "token-1"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSender:
    """Sender that records calls; results are popped from `results`, else `succeed`."""

    def __init__(self):
        self.sent: list[tuple[str, Destination]] = []
        self.results: list[bool] = []
        self.succeed = True
        self.block_for = 0.0
        self.closed = False

    async def send(self, payload_json: str, destination: Destination) -> bool:
        if self.block_for:
            await asyncio.sleep(self.block_for)
        self.sent.append((payload_json, destination))
        if self.results:
            return self.results.pop(0)
        return self.succeed

    async def aclose(self) -> None:
        self.closed = True


class Harness:
    """A DispatchWorker wired to in-memory collaborators."""

    def __init__(self, **worker_options):
        self.clock = FakeClock()
        self.repo = InMemoryPayloadRepository()
        self.sender = FakeSender()
        self.connectivity = ConnectivityMonitor(now_fn=self.clock)
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.factory_calls = 0
        options = {
            "message_delay": 0,
            "retry_interval": None,
            "now_fn": lambda: self.now,
        }
        options.update(worker_options)
        self.worker = DispatchWorker(
            repository_factory=self._repository_factory,
            sender_factory=lambda: self.sender,
            connectivity_factory=lambda config: self.connectivity,
            **options,
        )

    def _repository_factory(self, config: Config):
        self.factory_calls += 1
        return self.repo

    def record(
        self, body: str, destination: Destination = None, age: timedelta = None
    ) -> PayloadRecord:
        timestamp = self.now - (age or timedelta(seconds=0))
        return PayloadRecord(
            payload_json=body,
            destination=destination or make_config().destination,
            timestamp=timestamp,
        )


def make_config(**kwargs) -> Config:
    values = {"endpoint": ENDPOINT, "access_token": TOKEN, "persist_payloads": False}
    values.update(kwargs)
    return Config(**values)


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def make_harness():
    return Harness
