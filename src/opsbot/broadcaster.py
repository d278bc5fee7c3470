"""Persistent status broadcaster.

Keeps exactly one live status message in a channel. Each `tick` samples the
system, renders the report and reconciles the channel with it:

    UNINITIALIZED -> RECOVERING -> ACTIVE(id) <-> NEEDS_RESEND

Recovery first tries the stored message id, then a pinned message carrying
the status signature, and finally falls back to sending a fresh message. Every
failure lands in NEEDS_RESEND, which retries on the next tick forever.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from opsbot.channel import ChannelError, MessageNotFoundError, StatusChannel
from opsbot.models import ChannelMessage, SystemSnapshot
from opsbot.monitor import STATUS_SIGNATURE, render, sample
from opsbot.state import MessageStateStore

logger = logging.getLogger(__name__)


class BroadcastState(Enum):
    """Lifecycle states of the status broadcaster."""

    UNINITIALIZED = "uninitialized"
    RECOVERING = "recovering"
    ACTIVE = "active"
    NEEDS_RESEND = "needs_resend"


class StatusBroadcaster:
    """Reconciles one live status message against the current snapshot."""

    def __init__(
        self,
        channel: StatusChannel,
        store: MessageStateStore,
        *,
        interval: int | None = None,
        sampler: Callable[[], SystemSnapshot] = sample,
        sweep_limit: int = 100,
        signature: str = STATUS_SIGNATURE,
    ) -> None:
        """
        Initialize the StatusBroadcaster.

        Args:
            channel: Channel the status message lives in.
            store: Durable record of the live message id.
            interval: Refresh interval shown in the message header.
            sampler: Source of system snapshots.
            sweep_limit: Recent messages scanned for clutter once the stored
                message is confirmed gone. Zero disables the sweep.
            signature: Marker text identifying the status message.
        """
        self._channel = channel
        self._store = store
        self._interval = interval
        self._sampler = sampler
        self._sweep_limit = sweep_limit
        self._signature = signature
        self._state = BroadcastState.UNINITIALIZED
        self._message_id: int | None = None
        # Set when an old status message may still be sitting in the channel
        self._stale_left = False

    @property
    def state(self) -> BroadcastState:
        return self._state

    @property
    def message_id(self) -> int | None:
        """Id of the message currently believed live, if any."""
        return self._message_id

    async def tick(self) -> BroadcastState:
        """Run one reconciliation pass and return the resulting state."""
        content = render(self._sampler(), self._interval)

        if self._state is BroadcastState.UNINITIALIZED:
            await self._restore()
        if self._state is BroadcastState.RECOVERING:
            await self._adopt_pinned()
        if self._state is BroadcastState.ACTIVE:
            # A failed edit waits for the next tick before resending
            await self._edit(content)
            return self._state
        if self._state is BroadcastState.NEEDS_RESEND:
            await self._resend(content)
        return self._state

    def _is_status_message(self, message: ChannelMessage, own_id: int) -> bool:
        return message.author_id == own_id and self._signature in message.content

    def _activate(self, message_id: int) -> None:
        self._message_id = message_id
        self._state = BroadcastState.ACTIVE

    def _invalidate(self) -> None:
        self._message_id = None
        self._state = BroadcastState.NEEDS_RESEND

    async def _restore(self) -> None:
        """Pick up the message recorded by a previous run."""
        stored_id = self._store.load()
        self._state = BroadcastState.RECOVERING
        if stored_id is None:
            return

        try:
            await self._channel.fetch(stored_id)
        except MessageNotFoundError:
            logger.info("Stored status message %d is gone, discarding record", stored_id)
            self._store.clear()
            await self._sweep()
            return
        except ChannelError as exc:
            logger.warning("Could not fetch stored status message %d: %s", stored_id, exc)
            return

        logger.info("Resuming status message %d", stored_id)
        self._activate(stored_id)

    async def _sweep(self) -> None:
        if self._sweep_limit <= 0:
            return
        try:
            deleted = await self._channel.delete_recent(self._sweep_limit)
        except ChannelError as exc:
            logger.warning("Failed to sweep stale status messages: %s", exc)
            return
        if deleted:
            logger.info("Swept %d stale messages from the status channel", deleted)

    async def _adopt_pinned(self) -> None:
        """Adopt the first pinned status message, or fall back to resending."""
        try:
            own_id = self._channel.user_id
            pinned = await self._channel.list_pinned()
        except ChannelError as exc:
            logger.warning("Failed to scan pinned messages: %s", exc)
            self._invalidate()
            return

        for message in pinned:
            if self._is_status_message(message, own_id):
                logger.info("Adopting pinned status message %d", message.id)
                self._store.save(message.id)
                self._activate(message.id)
                return
        self._invalidate()

    async def _edit(self, content: str) -> None:
        message_id = self._message_id
        if message_id is None:
            self._invalidate()
            return
        try:
            await self._channel.edit(message_id, content)
        except MessageNotFoundError:
            logger.warning("Status message %d disappeared, will resend", message_id)
            self._store.clear()
            self._invalidate()
        except ChannelError as exc:
            logger.warning("Failed to edit status message %d: %s", message_id, exc)
            self._invalidate()
            self._stale_left = True

    async def _unpin_stale(self) -> None:
        try:
            own_id = self._channel.user_id
            pinned = await self._channel.list_pinned()
        except ChannelError as exc:
            logger.warning("Failed to list pins before resend: %s", exc)
            return

        for message in pinned:
            if not self._is_status_message(message, own_id):
                continue
            try:
                await self._channel.unpin(message.id)
            except ChannelError as exc:
                logger.warning("Failed to unpin stale status message %d: %s", message.id, exc)
                continue
            self._stale_left = True

    async def _resend(self, content: str) -> None:
        await self._unpin_stale()
        try:
            message_id = await self._channel.send(content)
        except ChannelError as exc:
            logger.error("Failed to send status message, retrying next tick: %s", exc)
            return

        logger.info("Posted new status message %d", message_id)
        self._store.save(message_id)
        self._activate(message_id)
        try:
            await self._channel.pin(message_id)
        except ChannelError as exc:
            logger.warning("Failed to pin status message %d: %s", message_id, exc)
            return

        # The sweep spares pinned messages, so it only runs once the new one is pinned
        if self._stale_left:
            self._stale_left = False
            await self._sweep()
