"""Verification Test: Chaos Monkey - random chat API failures.

The broadcaster is driven through many ticks while the channel randomly fails
operations, deletes the live message behind its back and the process
"restarts" with only the state file surviving. The broadcaster must never
raise, never send while it believes a message is live, and always converge
back to a single live status message once the channel behaves.
"""

import random

import pytest

from conftest import FakeChannel, make_snapshot
from opsbot.broadcaster import BroadcastState, StatusBroadcaster
from opsbot.channel import ChannelError, MessageNotFoundError
from opsbot.monitor import STATUS_SIGNATURE
from opsbot.state import MessageStateStore

OPERATIONS = ("send", "edit", "fetch", "list_pinned", "pin", "unpin", "delete_recent")


def status_pins(channel: FakeChannel) -> list[int]:
    """Pinned messages that look like our status message."""
    return [
        message_id
        for message_id in channel.pinned
        if message_id in channel.messages
        and channel.messages[message_id].author_id == channel.user_id
        and STATUS_SIGNATURE in channel.messages[message_id].content
    ]


def inject_failures(rng: random.Random, channel: FakeChannel, operations) -> None:
    channel.fail.clear()
    for name in operations:
        if rng.random() < 0.3:
            channel.fail[name] = ChannelError(f"{name} 503")


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(20))
    async def test_survives_random_failures(self, tmp_path, seed):
        """
        Test the broadcaster never raises and never double-sends.

        Every send must happen from NEEDS_RESEND, and whenever the broadcaster
        reports ACTIVE the state file names the same message.
        """
        rng = random.Random(seed)
        channel = FakeChannel()
        store = MessageStateStore(tmp_path / "status.txt")
        broadcaster = StatusBroadcaster(channel, store, interval=5, sampler=make_snapshot)

        for _ in range(60):
            inject_failures(rng, channel, OPERATIONS)
            if broadcaster.message_id in channel.messages and rng.random() < 0.1:
                del channel.messages[broadcaster.message_id]
            if rng.random() < 0.05:
                broadcaster = StatusBroadcaster(channel, store, interval=5, sampler=make_snapshot)

            live_before = broadcaster.state is BroadcastState.ACTIVE
            sends_before = len(channel.calls_to("send"))

            state = await broadcaster.tick()

            if live_before:
                assert len(channel.calls_to("send")) == sends_before
            if state is BroadcastState.ACTIVE:
                assert broadcaster.message_id is not None
                assert store.load() == broadcaster.message_id
            else:
                assert state is BroadcastState.NEEDS_RESEND
                assert broadcaster.message_id is None

        # Once the channel behaves, two ticks are enough to be live again
        channel.fail.clear()
        await broadcaster.tick()
        assert await broadcaster.tick() is BroadcastState.ACTIVE
        assert broadcaster.message_id in channel.messages
        assert store.load() == broadcaster.message_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(20))
    async def test_single_status_pin(self, tmp_path, seed):
        """
        Test at most one status message stays pinned.

        While the pin listing and unpinning work, stale pins are always cleaned
        up before a resend, whatever else fails.
        """
        rng = random.Random(seed)
        channel = FakeChannel()
        store = MessageStateStore(tmp_path / "status.txt")
        broadcaster = StatusBroadcaster(channel, store, interval=5, sampler=make_snapshot)

        for _ in range(60):
            inject_failures(rng, channel, ("send", "edit", "fetch", "pin"))
            if rng.random() < 0.1 and broadcaster.message_id is not None:
                channel.fail["edit"] = MessageNotFoundError("deleted by a moderator")

            await broadcaster.tick()

            assert len(status_pins(channel)) <= 1
            if broadcaster.state is BroadcastState.ACTIVE and broadcaster.message_id in channel.pinned:
                assert status_pins(channel) == [broadcaster.message_id]

    @pytest.mark.asyncio
    async def test_restart_resumes_instead_of_resending(self, tmp_path):
        """Test a restarted process keeps editing the message it left behind."""
        channel = FakeChannel()
        store = MessageStateStore(tmp_path / "status.txt")
        first = StatusBroadcaster(channel, store, interval=5, sampler=make_snapshot)
        await first.tick()

        for _ in range(5):
            restarted = StatusBroadcaster(channel, store, interval=5, sampler=make_snapshot)
            assert await restarted.tick() is BroadcastState.ACTIVE
            assert restarted.message_id == first.message_id

        assert len(channel.calls_to("send")) == 1
