import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

# Ensure project root is on sys.path for CI environments where
# Python might not automatically include it (e.g., some GitHub
# Actions runners invoking pytest differently).
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.config_service import (
    CONFIG_CREATION_DEDUPE,
    CONFIG_ORPHAN_CLEANUP_DELAY,
    CONFIG_REMOTE_TIMEOUT,
    ConfigService,
)
from services.db.database import Database
from services.registry import ChannelRegistry
from services.voice_service import VoiceService
from tests.factories import FakeGateway

GUILD_ID = 123

# Short timings so delayed cleanups run within a test
FAST_SETTINGS = {
    CONFIG_REMOTE_TIMEOUT: 1.0,
    CONFIG_ORPHAN_CLEANUP_DELAY: 0.05,
    CONFIG_CREATION_DEDUPE: 5.0,
}


@pytest_asyncio.fixture()
async def temp_db(tmp_path):
    """Initialize Database to a temporary file for isolation across tests."""
    # Save original state
    orig_path = Database._db_path
    orig_initialized = Database._initialized

    # Reset and initialize with temp database
    Database._initialized = False
    Database._db_path = None
    db_file = tmp_path / "test.db"
    await Database.initialize(str(db_file))

    # Verify initialization worked
    assert Database._initialized is True
    assert Database._db_path == str(db_file)

    yield str(db_file)

    # Restore original state completely
    Database._db_path = orig_path
    Database._initialized = orig_initialized


@pytest.fixture
def registry(temp_db) -> ChannelRegistry:
    return ChannelRegistry()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_config_service():
    async def _make(**overrides) -> ConfigService:
        settings = {**FAST_SETTINGS, **overrides}
        loader = SimpleNamespace(load_config=lambda: {})
        service = ConfigService(config_loader=loader, overrides=settings)
        await service.initialize()
        return service

    return _make


@pytest_asyncio.fixture()
async def make_voice_service(registry, gateway, make_config_service):
    """Factory for an initialized VoiceService wired to the fake gateway."""
    created: list[VoiceService] = []

    async def _make(**overrides) -> VoiceService:
        config = await make_config_service(**overrides)
        service = VoiceService(config, registry, gateway, test_mode=True)
        await service.initialize()
        created.append(service)
        return service

    yield _make

    for service in created:
        await service.shutdown()


@pytest_asyncio.fixture()
async def voice_service(make_voice_service) -> VoiceService:
    return await make_voice_service()


@pytest_asyncio.fixture()
async def lobby_id(registry, gateway) -> int:
    """A registered lobby that exists on the fake gateway."""
    channel_id = gateway.add_channel(GUILD_ID, "➕ Create Voice Channel", category_id=77)
    await registry.register_lobby(channel_id, GUILD_ID)
    return channel_id
