"""Discord client: slash commands and the status broadcaster lifecycle."""

from __future__ import annotations

import logging

import discord
from discord import app_commands

from opsbot.broadcaster import StatusBroadcaster
from opsbot.channel import DiscordChannel
from opsbot.commands import Action, build_actions, restart_service, run_action, uptime
from opsbot.github import NotifierUnavailableError
from opsbot.monitor import report_now
from opsbot.scheduler import StatusScheduler
from opsbot.settings import Settings
from opsbot.state import MessageStateStore

logger = logging.getLogger(__name__)


class OpsBot(discord.Client):
    """
    The operations bot.

    Registers the slash commands on construction, syncs them on login and
    starts the status broadcaster the first time the gateway reports ready.
    """

    def __init__(self, settings: Settings, store: MessageStateStore) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents)
        self.settings = settings
        self.tree = app_commands.CommandTree(self)
        self._store = store
        self._scheduler: StatusScheduler | None = None
        self._register_commands()

    @property
    def scheduler(self) -> StatusScheduler | None:
        return self._scheduler

    def _register_commands(self) -> None:
        timeout = self.settings.command_timeout_secs

        @self.tree.command(name="status", description="Show system status (CPU, RAM, Disk)")
        async def status(interaction: discord.Interaction) -> None:
            await interaction.response.send_message(report_now())

        @self.tree.command(
            name="health", description="Simple health check to see if the bot is responsive"
        )
        async def health(interaction: discord.Interaction) -> None:
            await interaction.response.send_message("✅ Bot is alive.")

        @self.tree.command(name="uptime", description="Show system uptime")
        async def show_uptime(interaction: discord.Interaction) -> None:
            await interaction.response.send_message(await uptime())

        @self.tree.command(name="restart", description="Restart a systemd service")
        @app_commands.describe(service="The name of the systemd service to restart")
        async def restart(interaction: discord.Interaction, service: str) -> None:
            await interaction.response.defer(thinking=True)
            await interaction.followup.send(await restart_service(service, timeout=timeout))

        for action in build_actions(self.settings).values():
            self.tree.add_command(self._action_command(action, timeout))

    @staticmethod
    def _action_command(action: Action, timeout: float) -> app_commands.Command:
        async def callback(interaction: discord.Interaction) -> None:
            # Build scripts easily outlive the 3s interaction deadline
            await interaction.response.defer(thinking=True)
            await interaction.followup.send(await run_action(action, timeout=timeout))

        return app_commands.Command(
            name=action.name,
            description=action.description,
            callback=callback,
        )

    async def setup_hook(self) -> None:
        synced = await self.tree.sync()
        logger.info("Registered %d slash commands", len(synced))

    async def on_ready(self) -> None:
        logger.info("%s is connected!", self.user)
        # on_ready fires again after every reconnect
        if self._scheduler is None:
            self._scheduler = self.build_scheduler()
        self._scheduler.start()

    def build_scheduler(self) -> StatusScheduler:
        config = self.settings.broadcast_config()
        broadcaster = StatusBroadcaster(
            DiscordChannel(self, config.channel_id),
            self._store,
            interval=config.interval,
            sweep_limit=self.settings.status_sweep_limit,
        )
        return StatusScheduler(broadcaster, config.interval)

    async def notify(self, channel_id: int, content: str) -> None:
        """Post a message to `channel_id` on behalf of the webhook server."""
        if not self.is_ready():
            raise NotifierUnavailableError("Discord client is not ready yet")
        await DiscordChannel(self, channel_id).send(content)

    async def close(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        await super().close()
