"""Shared fixtures for the sync queue tests."""
import os

os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from syncqueue.connectivity import ConnectivityMonitor
from syncqueue.queue.manager import QueueManager
from syncqueue.queue.models import HandlerResult
from syncqueue.storage.memory_store import MemoryStore


class RecordingHandler:
    """Async handler that records every action and replies from a script.

    ``outcomes`` maps an action type to a HandlerResult, a mapping, or an
    exception to raise; unlisted types succeed.
    """

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.calls = []

    async def __call__(self, action):
        self.calls.append(action)
        outcome = self.outcomes.get(action.type, HandlerResult(success=True))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def payloads(self):
        return [action.payload for action in self.calls]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def monitor():
    return ConnectivityMonitor(initially_offline=False)


@pytest.fixture
def manager(store, monitor):
    return QueueManager(store, storage_key="test-queue", monitor=monitor)


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def make_handler():
    return RecordingHandler


class RecordingSubmit:
    """Async ``online_submit`` that records submitted values and replies with ``outcome``."""

    def __init__(self, outcome=None):
        self.outcome = outcome if outcome is not None else HandlerResult(success=True)
        self.values = []

    async def __call__(self, value):
        self.values.append(value)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def submit():
    return RecordingSubmit()


@pytest.fixture
def make_submit():
    return RecordingSubmit
