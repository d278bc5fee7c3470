"""Shared fixtures for opsbot tests."""

from datetime import datetime, timezone

import pytest

from opsbot.channel import ChannelError, MessageNotFoundError
from opsbot.models import ChannelMessage, DiskUsage, SystemSnapshot

BOT_ID = 1000
OTHER_USER_ID = 2000


def make_snapshot(**overrides) -> SystemSnapshot:
    """Build a deterministic snapshot, overriding any field."""
    fields = {
        "cpu_percent": 25.0,
        "cpu_percent_per_core": (10.0, 20.0, 30.0, 40.0),
        "memory_used": 8 * 1024**3,
        "memory_total": 16 * 1024**3,
        "disks": (
            DiskUsage(name="/dev/sda1", mount_point="/", used=100 * 10**9, total=500 * 10**9),
        ),
        "temperature": 45.0,
        "uptime_seconds": 3 * 86400 + 4 * 3600 + 5 * 60 + 6,
        "captured_at": datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return SystemSnapshot(**fields)


class FakeChannel:
    """
    In-memory `StatusChannel` that records every call.

    Failures are injected by putting an exception in `fail[<operation>]`; it
    is raised on every call until removed.
    """

    def __init__(self, user_id: int = BOT_ID) -> None:
        self.user_id = user_id
        self.messages: dict[int, ChannelMessage] = {}
        self.pinned: list[int] = []  # most recently pinned first
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self._next_id = 500

    def add_message(self, message_id: int, content: str, *, author_id: int = BOT_ID, pinned: bool = False) -> None:
        self.messages[message_id] = ChannelMessage(id=message_id, author_id=author_id, content=content)
        if pinned:
            self.pinned.insert(0, message_id)

    def calls_to(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _check(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]

    def _require(self, message_id: int) -> ChannelMessage:
        if message_id not in self.messages:
            raise MessageNotFoundError(f"Unknown message {message_id}")
        return self.messages[message_id]

    async def send(self, content: str) -> int:
        self._check("send", content)
        self._next_id += 1
        self.add_message(self._next_id, content)
        return self._next_id

    async def edit(self, message_id: int, content: str) -> None:
        self._check("edit", message_id, content)
        old = self._require(message_id)
        self.messages[message_id] = ChannelMessage(id=message_id, author_id=old.author_id, content=content)

    async def fetch(self, message_id: int) -> ChannelMessage:
        self._check("fetch", message_id)
        return self._require(message_id)

    async def list_pinned(self) -> list[ChannelMessage]:
        self._check("list_pinned")
        return [self.messages[message_id] for message_id in self.pinned if message_id in self.messages]

    async def pin(self, message_id: int) -> None:
        self._check("pin", message_id)
        self._require(message_id)
        if message_id not in self.pinned:
            self.pinned.insert(0, message_id)

    async def unpin(self, message_id: int) -> None:
        self._check("unpin", message_id)
        self._require(message_id)
        if message_id in self.pinned:
            self.pinned.remove(message_id)

    async def delete_recent(self, limit: int) -> int:
        self._check("delete_recent", limit)
        doomed = [
            message_id
            for message_id, message in self.messages.items()
            if message.author_id == self.user_id and message_id not in self.pinned
        ][-limit:]
        for message_id in doomed:
            del self.messages[message_id]
        return len(doomed)


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def snapshot() -> SystemSnapshot:
    return make_snapshot()


@pytest.fixture
def transient_error() -> ChannelError:
    return ChannelError("503 Service Unavailable")
