import asyncio
import os
import time

import discord
from discord.ext import commands
from dotenv import load_dotenv

from config.config_loader import ConfigLoader
from utils.logging import get_logger, setup_logging
from utils.tasks import spawn

# Initialize logger
logger = get_logger(__name__)

# List of initial extensions to load
initial_extensions = [
    "cogs.voice.commands",
    "cogs.voice.events",
]

# Permissions the bot needs in every guild to run lobbies
REQUIRED_PERMISSIONS = [
    "view_channel",
    "manage_channels",
    "move_members",
    "connect",
    "send_messages",
]


def build_intents() -> discord.Intents:
    """Start from no intents and enable only what's required."""
    intents = discord.Intents.none()
    intents.guilds = True  # Required: Guild events, channels, roles
    intents.members = True  # Required: member cache for permission checks and moves
    intents.voice_states = True  # Required: Voice channel join/leave for lobbies
    return intents


class MyBot(commands.Bot):
    """Bot with project-specific attributes and helpers."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.config = ConfigLoader.load_config()
        self.start_time = time.monotonic()
        self.services = None
        self._background_tasks: set[asyncio.Task] = set()

    async def setup_hook(self) -> None:
        """Initialize services, load cogs, and sync commands."""
        from services.db.database import Database
        from services.service_container import ServiceContainer

        db_path = os.getenv("DATABASE_PATH") or (self.config.get("database") or {}).get("path")
        await Database.initialize(db_path)

        self.services = ServiceContainer(self)
        await self.services.initialize()
        logger.info("ServiceContainer initialized")

        for ext in initial_extensions:
            try:
                await self.load_extension(ext)
                logger.info(f"Loaded extension: {ext}")
            except commands.ExtensionError as e:
                logger.exception(f"Failed to load extension {ext}", exc_info=e)
                raise

        # Register persistent views (must happen every startup for persistence to work)
        from helpers.views import ChannelConfigView

        self.add_view(ChannelConfigView(self))

        await self._sync_commands()

        # Live events stay queued until reconciliation has run
        spawn(
            self._reconcile_after_ready(),
            name="bot.reconcile_after_ready",
            registry=self._background_tasks,
        )

    async def _sync_commands(self) -> None:
        dev_guild_id = (self.config.get("bot") or {}).get("dev_guild_id")
        try:
            if dev_guild_id:
                guild = discord.Object(id=int(dev_guild_id))
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                logger.info(f"Commands synced to dev guild {dev_guild_id}.")
            else:
                await self.tree.sync()
                logger.info("All commands synced globally.")
        except discord.HTTPException as e:
            logger.exception("Failed to sync commands", exc_info=e)

        logger.info("Registered commands: ")
        for command in self.tree.walk_commands():
            logger.info(
                f"- Command: {command.qualified_name}, Description: {command.description}"
            )

    async def _reconcile_after_ready(self) -> None:
        await self.wait_until_ready()
        report = await self.services.start_dispatching()
        logger.info(
            f"Startup reconciliation finished with {report.mutations} changes; dispatching events"
        )

    async def on_ready(self) -> None:
        """Called when the bot is ready."""
        if not self.user:
            logger.warning("Bot user is not initialized")
            return

        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        for guild in self.guilds:
            self.check_bot_permissions(guild)

    def check_bot_permissions(self, guild: discord.Guild) -> list[str]:
        """Verify required guild-level permissions and log any missing ones."""
        if not guild or not guild.me:
            logger.warning(
                "Bot permissions cannot be checked because the bot is not in the guild or the guild is None."
            )
            return []

        bot_member = guild.me
        if missing_permissions := [
            perm
            for perm in REQUIRED_PERMISSIONS
            if not getattr(bot_member.guild_permissions, perm, False)
        ]:
            logger.warning(
                f"Missing permissions in guild '{guild.name}': {', '.join(missing_permissions)}"
            )
        else:
            logger.info(
                f"All required permissions are present in guild '{guild.name}'."
            )
        return missing_permissions

    @property
    def uptime(self) -> str:
        seconds = int(time.monotonic() - self.start_time)
        hours, remainder = divmod(seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{hours}h {minutes}m {seconds}s"

    async def close(self) -> None:
        """
        Closes the bot and cleans up all resources.
        """
        logger.info("Shutting down the bot.")

        for task in list(self._background_tasks):
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
            self._background_tasks.clear()

        if self.services:
            try:
                await self.services.cleanup()
                logger.info("Services cleaned up")
            except Exception as e:
                logger.exception("Error cleaning up services", exc_info=e)

        await super().close()


def main() -> None:
    # Load environment variables
    load_dotenv()
    setup_logging()

    # Load sensitive information from .env
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        logger.critical("DISCORD_TOKEN not found in environment variables.")
        raise ValueError("DISCORD_TOKEN not set.")

    bot = MyBot(command_prefix=commands.when_mentioned, intents=build_intents())
    # Logging is configured above; keep discord.py from installing its own handler
    bot.run(token, log_handler=None)


if __name__ == "__main__":
    main()
