"""Shared pytest fixtures for entrymirror tests."""

import asyncio

import pytest

from entrymirror.cache.manager import EntryCache
from entrymirror.entry import Entry

BASE = "https://example.com/store/"


def make_entry(n, resource=None):
    """Entry number n in context 1, with its own resource unless given."""
    return Entry(
        uri=f"{BASE}1/entry/{n}",
        resource_uri=resource or f"{BASE}1/resource/{n}",
        data={"entry_id": str(n), "context_id": "1"},
    )


class FakeTransport:
    """In-memory repository with call recording.

    Lists are plain lists of entry numbers. Setting ``gate`` to an
    asyncio.Event holds every call until the event is set.
    """

    def __init__(self, lists=None, identity=None):
        self.lists = lists or {}
        self.identity = identity or {"user": "guest", "id": "_guest"}
        self.users = {"alice": "secret", "bob": "hunter2"}
        self.calls = []
        self.gate = None
        self.fail = None

    async def _enter(self, name, *args):
        self.calls.append((name,) + args)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    async def fetch_entry(self, uri):
        await self._enter("fetch_entry", uri)
        n = uri.rsplit("/", 1)[-1]
        return {"uri": uri, "resource_uri": f"{BASE}1/resource/{n}", "entry_id": n}

    async def fetch_list_page(self, list_uri, limit, offset, sort=None):
        await self._enter("fetch_list_page", list_uri, limit, offset, sort)
        members = self.lists[list_uri]
        if sort is not None and sort.descending:
            members = list(reversed(members))
        window = members[offset : offset + limit]
        return {
            "items": [
                {"uri": f"{BASE}1/entry/{n}", "resource_uri": f"{BASE}1/resource/{n}"}
                for n in window
            ],
            "total_size": len(members),
        }

    async def fetch_identity(self):
        await self._enter("fetch_identity")
        return dict(self.identity)

    async def perform_auth_exchange(self, credentials):
        await self._enter("perform_auth_exchange", credentials)
        if credentials is None:
            self.identity = {"user": "guest", "id": "_guest"}
            return dict(self.identity)
        if self.users.get(credentials["user"]) != credentials["password"]:
            raise PermissionError("bad credentials")
        self.identity = {
            "user": credentials["user"],
            "id": f"id_{credentials['user']}",
            "homecontext": f"ctx_{credentials['user']}",
        }
        return dict(self.identity)


class Recorder:
    """Listener recording every notification."""

    def __init__(self):
        self.events = []

    def __call__(self, topic, payload):
        self.events.append((topic, payload))

    def topics(self):
        return [topic for topic, _ in self.events]


@pytest.fixture
def cache():
    """Create an empty entry cache."""
    return EntryCache()


@pytest.fixture
def recorder():
    """Create a notification recorder."""
    return Recorder()


@pytest.fixture
def transport():
    """Create a fake repository with a 12 member list."""
    return FakeTransport(lists={f"{BASE}1/entry/list": list(range(100, 112))})


async def settle():
    """Let pending tasks run until they block."""
    for _ in range(5):
        await asyncio.sleep(0)
