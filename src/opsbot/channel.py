"""Chat channel message capability consumed by the status broadcaster."""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

import aiohttp
import discord

from opsbot.models import ChannelMessage

logger = logging.getLogger(__name__)


class ChannelError(Exception):
    """A channel operation failed; the caller may retry later."""


class MessageNotFoundError(ChannelError):
    """The referenced message no longer exists."""


class StatusChannel(Protocol):
    """
    Operations the broadcaster needs from a chat channel.

    Every method raises `ChannelError` on failure and `MessageNotFoundError`
    when the referenced message is confirmed gone. `fetch` also reports a
    message the bot may no longer read as gone. `list_pinned` returns the
    most recently pinned message first.
    """

    @property
    def user_id(self) -> int: ...

    async def send(self, content: str) -> int: ...

    async def edit(self, message_id: int, content: str) -> None: ...

    async def fetch(self, message_id: int) -> ChannelMessage: ...

    async def list_pinned(self) -> list[ChannelMessage]: ...

    async def pin(self, message_id: int) -> None: ...

    async def unpin(self, message_id: int) -> None: ...

    async def delete_recent(self, limit: int) -> int: ...


def _to_channel_message(message: discord.Message) -> ChannelMessage:
    return ChannelMessage(id=message.id, author_id=message.author.id, content=message.content)


@asynccontextmanager
async def _translate_errors(
    action: str, missing: tuple[type[Exception], ...] = (discord.NotFound,)
) -> AsyncIterator[None]:
    try:
        yield
    except missing as exc:
        raise MessageNotFoundError(f"{action}: {exc}") from exc
    except (discord.HTTPException, aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise ChannelError(f"{action}: {exc}") from exc


class DiscordChannel:
    """`StatusChannel` backed by a connected discord.py client."""

    def __init__(self, client: discord.Client, channel_id: int) -> None:
        self._client = client
        self._channel_id = channel_id
        self._channel: discord.abc.Messageable | None = None

    @property
    def channel_id(self) -> int:
        return self._channel_id

    @property
    def user_id(self) -> int:
        if self._client.user is None:
            raise ChannelError("Discord client is not logged in")
        return self._client.user.id

    async def _resolve(self) -> discord.abc.Messageable:
        if self._channel is None:
            channel = self._client.get_channel(self._channel_id)
            if channel is None:
                async with _translate_errors(f"fetch channel {self._channel_id}"):
                    channel = await self._client.fetch_channel(self._channel_id)
            if not isinstance(channel, discord.abc.Messageable):
                raise ChannelError(f"Channel {self._channel_id} cannot hold messages")
            self._channel = channel
        return self._channel

    async def send(self, content: str) -> int:
        channel = await self._resolve()
        async with _translate_errors("send status message"):
            message = await channel.send(content)
        return message.id

    async def edit(self, message_id: int, content: str) -> None:
        channel = await self._resolve()
        async with _translate_errors(f"edit message {message_id}"):
            await channel.get_partial_message(message_id).edit(content=content)

    async def fetch(self, message_id: int) -> ChannelMessage:
        channel = await self._resolve()
        async with _translate_errors(
            f"fetch message {message_id}", missing=(discord.NotFound, discord.Forbidden)
        ):
            message = await channel.fetch_message(message_id)
        return _to_channel_message(message)

    async def list_pinned(self) -> list[ChannelMessage]:
        channel = await self._resolve()
        async with _translate_errors("list pinned messages"):
            pins = channel.pins()
            # Older discord.py returns a coroutine, newer an async iterator
            if inspect.isawaitable(pins):
                messages = await pins
            else:
                messages = [message async for message in pins]
        return [_to_channel_message(message) for message in messages]

    async def pin(self, message_id: int) -> None:
        channel = await self._resolve()
        async with _translate_errors(f"pin message {message_id}"):
            await channel.get_partial_message(message_id).pin()

    async def unpin(self, message_id: int) -> None:
        channel = await self._resolve()
        async with _translate_errors(f"unpin message {message_id}"):
            await channel.get_partial_message(message_id).unpin()

    async def delete_recent(self, limit: int) -> int:
        """Delete the bot's own unpinned messages among the last `limit`."""
        channel = await self._resolve()
        own_id = self.user_id
        deleted = 0
        async with _translate_errors("scan recent messages"):
            async for message in channel.history(limit=limit):
                if message.author.id != own_id or message.pinned:
                    continue
                try:
                    await message.delete()
                except discord.NotFound:
                    continue
                except discord.HTTPException as exc:
                    logger.warning("Could not delete message %d: %s", message.id, exc)
                    continue
                deleted += 1
        return deleted
