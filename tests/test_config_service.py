"""
Tests for ConfigLoader and ConfigService.
"""

from types import SimpleNamespace

import pytest

from config.config_loader import ConfigLoader
from services.config_service import (
    CONFIG_DEFAULT_LOBBY_NAME,
    CONFIG_DISPATCH_CONCURRENCY,
    CONFIG_REMOTE_TIMEOUT,
    ConfigService,
)
from utils.errors import ServiceError


@pytest.fixture
def reset_loader():
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


def _service(config: dict, **overrides) -> ConfigService:
    return ConfigService(
        config_loader=SimpleNamespace(load_config=lambda: config), overrides=overrides
    )


class TestConfigLoader:
    def test_loads_yaml_file(self, tmp_path, reset_loader):
        path = tmp_path / "config.yaml"
        path.write_text("voice:\n  remote_timeout_seconds: 3\nlogging:\n  level: debug\n")

        config = ConfigLoader.load_config(str(path))

        assert config["voice"]["remote_timeout_seconds"] == 3
        assert ConfigLoader.get_config_status()["config_status"] == "ok"

    def test_invalid_logging_level_is_reset(self, tmp_path, reset_loader):
        path = tmp_path / "config.yaml"
        path.write_text("logging:\n  level: chatty\n")

        config = ConfigLoader.load_config(str(path))

        assert config["logging"]["level"] == "INFO"

    def test_missing_file_is_degraded(self, tmp_path, reset_loader):
        config = ConfigLoader.load_config(str(tmp_path / "missing.yaml"))

        assert config == {}
        assert ConfigLoader.get_config_status()["config_status"] == "degraded"

    def test_bad_yaml_is_error(self, tmp_path, reset_loader):
        path = tmp_path / "config.yaml"
        path.write_text("voice: [unclosed\n")

        assert ConfigLoader.load_config(str(path)) == {}
        assert ConfigLoader.get_config_status()["config_status"] == "error"

    def test_bundled_config_parses(self, reset_loader):
        config = ConfigLoader.load_config()

        assert ConfigLoader.get_config_status()["config_status"] == "ok"
        assert "voice" in config


class TestConfigService:
    @pytest.mark.asyncio
    async def test_reads_nested_keys(self):
        service = _service({"voice": {"remote_timeout_seconds": 4}})
        await service.initialize()

        assert await service.get_float(CONFIG_REMOTE_TIMEOUT) == 4.0

    @pytest.mark.asyncio
    async def test_falls_back_to_defaults(self):
        service = _service({})
        await service.initialize()

        assert await service.get_global_setting(CONFIG_DEFAULT_LOBBY_NAME) == "➕ Create Voice Channel"
        assert await service.get_global_setting(CONFIG_DISPATCH_CONCURRENCY) == 8
        assert await service.get_global_setting("voice.unknown", "x") == "x"

    @pytest.mark.asyncio
    async def test_overrides_win(self):
        service = _service({"voice": {"remote_timeout_seconds": 4}}, **{CONFIG_REMOTE_TIMEOUT: 1})
        await service.initialize()

        assert await service.get_float(CONFIG_REMOTE_TIMEOUT) == 1.0

    @pytest.mark.asyncio
    async def test_malformed_number_uses_default(self):
        service = _service({"voice": {"remote_timeout_seconds": "soon"}})
        await service.initialize()

        assert await service.get_float(CONFIG_REMOTE_TIMEOUT) == 10.0

    @pytest.mark.asyncio
    async def test_requires_initialization(self):
        service = _service({})

        with pytest.raises(ServiceError):
            await service.get_global_setting(CONFIG_REMOTE_TIMEOUT)

    @pytest.mark.asyncio
    async def test_get_config_returns_copy(self):
        service = _service({"voice": {"a": 1}})
        await service.initialize()

        service.get_config()["voice"]["a"] = 2

        assert await service.get_global_setting("voice.a") == 1
