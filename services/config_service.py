"""Configuration service for global voice settings."""

import copy
from typing import Any

from config.config_loader import ConfigLoader

from .base import BaseService

# -----------------------------------------------------------------------------
# Common Configuration Keys (centralized constants)
# -----------------------------------------------------------------------------

CONFIG_DATABASE_PATH = "database.path"
CONFIG_DEV_GUILD = "bot.dev_guild_id"

CONFIG_DEFAULT_LOBBY_NAME = "voice.default_lobby_name"
CONFIG_TEMP_NAME_FORMAT = "voice.temp_channel_name_format"
CONFIG_REMOTE_TIMEOUT = "voice.remote_timeout_seconds"
CONFIG_ORPHAN_CLEANUP_DELAY = "voice.orphan_cleanup_delay_seconds"
CONFIG_CREATION_DEDUPE = "voice.creation_dedupe_seconds"
CONFIG_DISPATCH_CONCURRENCY = "voice.dispatch_concurrency"
CONFIG_OWNER_PERMISSIONS = "voice.owner_permissions"
CONFIG_LOCK_MAINTENANCE_INTERVAL = "voice.lock_maintenance_seconds"

DEFAULTS: dict[str, Any] = {
    CONFIG_DEFAULT_LOBBY_NAME: "➕ Create Voice Channel",
    CONFIG_TEMP_NAME_FORMAT: "{name}'s Channel",
    CONFIG_REMOTE_TIMEOUT: 10.0,
    CONFIG_ORPHAN_CLEANUP_DELAY: 30.0,
    CONFIG_CREATION_DEDUPE: 2.0,
    CONFIG_DISPATCH_CONCURRENCY: 8,
    CONFIG_LOCK_MAINTENANCE_INTERVAL: 300.0,
}


class ConfigService(BaseService):
    """
    Service giving typed, dot-notation access to the YAML configuration.

    Values missing from the file fall back to ``DEFAULTS`` and then to the
    caller-supplied default.
    """

    def __init__(
        self,
        config_loader: ConfigLoader | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        super().__init__("config")
        self._global_config: dict[str, Any] = {}
        # Use centralized ConfigLoader to avoid duplicate path resolution/reads
        self._config_loader = config_loader or ConfigLoader()
        self._overrides = dict(overrides or {})

    async def _initialize_impl(self) -> None:
        """Load global configuration."""
        config = self._config_loader.load_config()
        # Work on a copy so coercions do not mutate the shared loader cache
        self._global_config = copy.deepcopy(config) if isinstance(config, dict) else {}

        if self._global_config:
            self.logger.info("Global configuration loaded successfully")
        else:
            self.logger.warning("Global config empty or missing; using defaults")

    async def get_global_setting(self, key: str, default: Any = None) -> Any:
        """
        Get a global setting.

        Args:
            key: Setting key (supports dot notation)
            default: Default value if setting not found

        Returns:
            Setting value or default
        """
        self._ensure_initialized()
        if key in self._overrides:
            return self._overrides[key]
        value = self._get_nested_value(self._global_config, key)
        if value is not None:
            return value
        if default is not None:
            return default
        return DEFAULTS.get(key)

    async def get_float(self, key: str, default: float | None = None) -> float:
        """Get a numeric setting, falling back when the value is malformed."""
        raw = await self.get_global_setting(key, default)
        try:
            return float(raw)
        except (TypeError, ValueError):
            fallback = default if default is not None else DEFAULTS.get(key, 0.0)
            self.logger.warning(
                "Invalid numeric value %r for %s; using %s", raw, key, fallback
            )
            return float(fallback)

    def _get_nested_value(self, data: dict[str, Any], key: str) -> Any:
        """Walk ``data`` following the dot-separated ``key``."""
        current: Any = data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def get_config(self) -> dict[str, Any]:
        """Return a copy of the loaded configuration."""
        return copy.deepcopy(self._global_config)

    async def health_check(self) -> dict[str, Any]:
        base = await super().health_check()
        base.update(ConfigLoader.get_config_status())
        return base
