"""
Pytest fixtures for chip ledger tests.

Async core paths are driven with asyncio.run() inside plain test functions,
one event loop per test, so every test builds its own manager.
"""

import asyncio
from typing import Any, List

import pytest

from core.broadcaster import Broadcaster
from core.ledger import LedgerRecorder
from core.locks import SessionLocks
from core.session_manager import SessionManager
from core.storage import InMemoryStorage


class RecordingSubscriber:
    """Stand-in for a WebSocket connection that keeps every message it receives."""

    def __init__(self, name: str = "client"):
        self.name = name
        self.messages: List[dict] = []

    async def send_json(self, data: Any) -> None:
        self.messages.append(data)

    def events(self) -> List[str]:
        return [m["event"] for m in self.messages]


class BrokenSubscriber:
    """A connection that has gone away: every send fails."""

    async def send_json(self, data: Any) -> None:
        raise ConnectionError("socket closed")


class YieldingStorage(InMemoryStorage):
    """In-memory storage that yields to the event loop after each read,
    so concurrent read-modify-write cycles can interleave."""

    async def get_session(self, session_id):
        doc = await super().get_session(session_id)
        await asyncio.sleep(0)
        return doc


def build_manager(storage=None, serialize: bool = True):
    storage = storage if storage is not None else InMemoryStorage()
    broadcaster = Broadcaster()
    ledger = LedgerRecorder(storage)
    manager = SessionManager(storage, ledger, broadcaster, SessionLocks(enabled=serialize))
    return manager, storage, ledger, broadcaster


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def ledger(storage) -> LedgerRecorder:
    return LedgerRecorder(storage)


@pytest.fixture
def broadcaster() -> Broadcaster:
    return Broadcaster()


@pytest.fixture
def manager(storage, ledger, broadcaster) -> SessionManager:
    return SessionManager(storage, ledger, broadcaster, SessionLocks())


@pytest.fixture
def subscriber() -> RecordingSubscriber:
    return RecordingSubscriber()
