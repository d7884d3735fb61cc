"""
Service Container

Central registry for all bot services providing dependency injection and service lifecycle management.
"""

from typing import TYPE_CHECKING, Optional

from helpers.discord_api import ChannelGateway, DiscordChannelGateway
from helpers.task_queue import KeyedDispatcher
from utils.logging import get_logger
from utils.types import ChannelEvent, SweepReport

from .config_service import CONFIG_DISPATCH_CONCURRENCY, ConfigService
from .reconciliation import ReconciliationSweep
from .registry import ChannelRegistry, Registry
from .voice_service import VoiceService

if TYPE_CHECKING:
    from discord.ext.commands import Bot


class ServiceContainer:
    """
    Central container for managing all bot services.

    Builds the registry, the Discord gateway, the voice service and the
    event dispatcher in dependency order and tears them down in reverse.
    """

    def __init__(
        self,
        bot: Optional["Bot"] = None,
        *,
        config: ConfigService | None = None,
        registry: Registry | None = None,
        gateway: ChannelGateway | None = None,
        test_mode: bool = False,
    ) -> None:
        self.logger = get_logger("services.container")
        self.bot = bot
        self.test_mode = test_mode
        self._config: ConfigService | None = config
        self._registry: Registry | None = registry
        self._gateway: ChannelGateway | None = gateway
        self._voice: VoiceService | None = None
        self._dispatcher: KeyedDispatcher | None = None
        self._initialized = False

    @property
    def config(self) -> ConfigService:
        """Get the configuration service."""
        if self._config is None:
            raise RuntimeError("ConfigService not initialized")
        return self._config

    @property
    def registry(self) -> Registry:
        if self._registry is None:
            raise RuntimeError("ChannelRegistry not initialized")
        return self._registry

    @property
    def gateway(self) -> ChannelGateway:
        if self._gateway is None:
            raise RuntimeError("Channel gateway not initialized")
        return self._gateway

    @property
    def voice(self) -> VoiceService:
        """Get the voice service."""
        if self._voice is None:
            raise RuntimeError("VoiceService not initialized")
        return self._voice

    @property
    def dispatcher(self) -> KeyedDispatcher:
        if self._dispatcher is None:
            raise RuntimeError("Dispatcher not initialized")
        return self._dispatcher

    def get_all_services(self) -> list:
        """Get all initialized services for health monitoring."""
        return [service for service in (self._config, self._voice) if service]

    async def initialize(self) -> None:
        """Initialize all services in dependency order."""
        if self._initialized:
            self.logger.warning("ServiceContainer already initialized")
            return

        try:
            self.logger.info("Initializing services")

            if self._config is None:
                self._config = ConfigService()
            await self._config.initialize()
            self.logger.debug("ConfigService initialized")

            if self._registry is None:
                self._registry = ChannelRegistry()

            if self._gateway is None:
                if not self.bot:
                    raise RuntimeError("Bot instance required for DiscordChannelGateway")
                self._gateway = DiscordChannelGateway(self.bot)

            self._voice = VoiceService(
                self._config, self._registry, self._gateway, test_mode=self.test_mode
            )
            await self._voice.initialize()
            self.logger.debug("VoiceService initialized")

            concurrency = await self._config.get_global_setting(CONFIG_DISPATCH_CONCURRENCY)
            self._dispatcher = KeyedDispatcher(self._voice.handle_event, int(concurrency))

            self._initialized = True
            self.logger.info("All services initialized successfully")

        except Exception as e:
            self.logger.exception("Failed to initialize services", exc_info=e)
            raise

    def submit_event(self, event: ChannelEvent) -> None:
        """Queue an ingress event behind earlier events of the same guild."""
        self.dispatcher.submit(event.guild_id, event)

    async def start_dispatching(self) -> SweepReport:
        """
        Reconcile the registry with Discord, then release queued events.

        The gate opens even if the sweep fails; live events and the next
        startup sweep repair whatever was left behind.
        """
        try:
            report = await ReconciliationSweep(self.voice).run()
        except Exception as e:
            self.logger.exception(
                "Startup reconciliation failed; dispatching events anyway", exc_info=e
            )
            report = SweepReport(errors=1)
        self.dispatcher.open()
        return report

    async def cleanup(self) -> None:
        """Clean up all services in reverse dependency order."""
        if not self._initialized:
            return

        self.logger.info("Cleaning up services")

        if self._dispatcher:
            await self._dispatcher.stop()
            self._dispatcher = None

        if self._voice:
            await self._voice.shutdown()
            self._voice = None

        if self._config:
            await self._config.shutdown()
            self._config = None

        self._initialized = False
        self.logger.info("Services cleaned up")
