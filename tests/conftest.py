"""
Shared fixtures for SmartFinance tests.

No real API calls: the remote backend, the sheets client and the
Gemini model are all replaced by in-process fakes.
"""

import asyncio
import itertools
from typing import Optional

import pytest

from smartfinance.ledger.channel import SnapshotChannel
from smartfinance.ledger.errors import BackendUnavailableError
from smartfinance.models.sync import CollectionKind, CollectionSnapshot, LedgerWrite
from smartfinance.services.storage import LedgerBackend


class FakeRemoteBackend(LedgerBackend):
    """
    Stand-in for a remote-synced backend.

    Records every commit, can be told to fail, and exposes the channel so
    tests can push snapshots the way a subscription feed would.
    """

    name = "fake_remote"

    def __init__(self, initial: Optional[dict] = None):
        self.initial = initial or {}
        self.commits: list[list[LedgerWrite]] = []
        self.channel: Optional[SnapshotChannel] = None
        self.user_id: Optional[str] = None
        self.fail_commits = False
        self.fail_open = False
        self.commit_delays: list[float] = []
        self.closed = False
        self._ids = itertools.count(1)

    def new_id(self, collection: CollectionKind) -> str:
        return f"{collection.value[:3]}-{next(self._ids)}"

    async def open(self, user_id, channel):
        if self.fail_open:
            raise BackendUnavailableError("handshake failed")
        self.user_id = user_id
        self.channel = channel
        return [
            CollectionSnapshot(
                collection=kind,
                records=tuple(self.initial.get(kind, ())),
            )
            for kind in CollectionKind
        ]

    async def commit(self, writes):
        if self.commit_delays:
            await asyncio.sleep(self.commit_delays.pop(0))
        if self.fail_commits:
            raise BackendUnavailableError("remote write rejected")
        self.commits.append(list(writes))

    async def close(self):
        self.closed = True


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Mimics the async generate call of a Gemini model."""

    def __init__(self, text: Optional[str] = "", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)


@pytest.fixture
def fake_remote():
    return FakeRemoteBackend()


@pytest.fixture
def fake_model_factory():
    return FakeModel
