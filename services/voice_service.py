"""
Voice service for managing lobby and temp voice channels.

A lobby is a voice channel that, when joined, spawns a personal temp channel
for the joining member. Temp channels inherit the lobby's permission
overwrites plus owner controls and are deleted as soon as they are empty.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from helpers.defensive_retry import retry_async
from helpers.discord_api import ChannelGateway
from helpers.voice_permissions import OWNER_PERMISSIONS, project_overlay
from services.registry import Registry
from utils.errors import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    LifecycleError,
    NotFoundError,
    RemoteError,
    TransportError,
)
from utils.logging import log_extra
from utils.types import (
    ChannelEvent,
    ChannelPermissionOverlay,
    ConfigurationPrompt,
    MemberJoinedChannel,
    MemberLeftChannel,
    RemoteChannelDeleted,
    VoiceChannelResult,
)

from .base import BaseService
from .config_service import (
    CONFIG_CREATION_DEDUPE,
    CONFIG_DEFAULT_LOBBY_NAME,
    CONFIG_LOCK_MAINTENANCE_INTERVAL,
    CONFIG_ORPHAN_CLEANUP_DELAY,
    CONFIG_OWNER_PERMISSIONS,
    CONFIG_REMOTE_TIMEOUT,
    CONFIG_TEMP_NAME_FORMAT,
    ConfigService,
)

MAX_CHANNEL_NAME_LENGTH = 100

PromptListener = Callable[[ConfigurationPrompt], Awaitable[None]]


def normalize_channel_name(name: str | None) -> str | None:
    """Return the trimmed name, or None if it is empty or too long."""
    if name is None:
        return None
    cleaned = name.strip()
    if not cleaned or len(cleaned) > MAX_CHANNEL_NAME_LENGTH:
        return None
    return cleaned


class VoiceService(BaseService):
    """
    Lifecycle manager for lobby and temp voice channels.

    Join/leave/delete events arrive already serialized per guild by the
    dispatcher. Emptiness is decided by an in-memory membership snapshot
    fed by those events and rebuilt by the reconciliation sweep.
    """

    def __init__(
        self,
        config_service: ConfigService,
        registry: Registry,
        gateway: ChannelGateway,
        test_mode: bool = False,
    ) -> None:
        super().__init__("voice")
        self.config_service = config_service
        self.registry = registry
        self.gateway = gateway
        self.test_mode = test_mode
        self._prompt_listeners: list[PromptListener] = []

        # channel_id -> member ids currently connected
        self._voice_channel_members: dict[int, set[int]] = {}

        # (guild_id, user_id) keys marked while a temp channel is being created
        # and for a short window afterwards to absorb duplicate join events
        self._users_creating_channels: set[tuple[int, int]] = set()
        self._channels_being_cleaned: set[int] = set()

        self._remote_timeout = 10.0
        self._orphan_cleanup_delay = 30.0
        self._creation_unmark_delay = 2.0
        self._lock_maintenance_interval = 300.0
        self._default_lobby_name = "➕ Create Voice Channel"
        self._temp_name_format = "{name}'s Channel"
        self._owner_permissions = OWNER_PERMISSIONS

    async def _initialize_impl(self) -> None:
        self._remote_timeout = await self.config_service.get_float(CONFIG_REMOTE_TIMEOUT)
        self._orphan_cleanup_delay = await self.config_service.get_float(
            CONFIG_ORPHAN_CLEANUP_DELAY
        )
        self._creation_unmark_delay = await self.config_service.get_float(
            CONFIG_CREATION_DEDUPE
        )
        self._default_lobby_name = await self.config_service.get_global_setting(
            CONFIG_DEFAULT_LOBBY_NAME
        )
        self._temp_name_format = await self.config_service.get_global_setting(
            CONFIG_TEMP_NAME_FORMAT
        )
        self._lock_maintenance_interval = await self.config_service.get_float(
            CONFIG_LOCK_MAINTENANCE_INTERVAL
        )
        owner_permissions = await self.config_service.get_global_setting(
            CONFIG_OWNER_PERMISSIONS
        )
        if owner_permissions:
            self._owner_permissions = frozenset(owner_permissions)

        if not self.test_mode:
            self._spawn(self._lock_maintenance_task(), "lock_maintenance")

    async def _shutdown_impl(self) -> None:
        if self._users_creating_channels:
            self.logger.warning(
                f"Shutting down with {len(self._users_creating_channels)} users still marked as creating channels"
            )
            self._users_creating_channels.clear()

    async def _lock_maintenance_task(self) -> None:
        interval = self._lock_maintenance_interval
        while True:
            await asyncio.sleep(interval)
            removed = await self.registry.cleanup_stale_locks(max_age_seconds=interval)
            if removed:
                self.logger.debug("Dropped %d stale registry locks", removed)

    # ------------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------------

    async def remote_call(
        self, awaitable: Awaitable[Any], *, action: str, channel_id: int | None = None
    ) -> Any:
        """Await a gateway call, turning a timeout into ``TransportError``."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._remote_timeout)
        except TimeoutError as e:
            raise TransportError(
                f"{action} timed out after {self._remote_timeout:g}s",
                channel_id=channel_id,
            ) from e

    async def _run_creation(
        self,
        create: Awaitable[int],
        register: Callable[[int], Awaitable[None]],
        *,
        action: str,
        on_late: Callable[[int], Any] | None = None,
    ) -> int:
        """
        Create a remote channel and record it in the registry.

        The create-then-register unit runs in its own task. If the caller's
        wait times out the task keeps running; once it finishes the registry
        write has happened and ``on_late`` is called with the new channel id.
        """
        task = asyncio.create_task(
            self._create_and_register(create, register, action=action),
            name=f"voice.{action}",
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        try:
            return await asyncio.wait_for(
                asyncio.shield(task), timeout=self._remote_timeout
            )
        except TimeoutError as e:
            self._spawn(
                self._finish_late_creation(task, action=action, on_late=on_late),
                f"{action}.late",
            )
            raise TransportError(
                f"{action} timed out after {self._remote_timeout:g}s"
            ) from e

    async def _create_and_register(
        self,
        create: Awaitable[int],
        register: Callable[[int], Awaitable[None]],
        *,
        action: str,
    ) -> int:
        channel_id = await create
        try:
            await register(channel_id)
        except (LifecycleError, DatabaseError) as e:
            self.logger.error(
                f"Registry write failed after {action}; deleting channel {channel_id}: {e}",
                extra=log_extra(channel_id=channel_id),
            )
            try:
                await self.remote_call(
                    self.gateway.delete_channel(channel_id),
                    action="delete_channel",
                    channel_id=channel_id,
                )
            except RemoteError as delete_error:
                self.logger.warning(
                    f"Could not delete unregistered channel {channel_id}: {delete_error}"
                )
            raise
        return channel_id

    async def _finish_late_creation(
        self,
        task: asyncio.Task,
        *,
        action: str,
        on_late: Callable[[int], Any] | None,
    ) -> None:
        try:
            channel_id = await task
        except (LifecycleError, DatabaseError) as e:
            self.logger.warning(f"Late {action} failed: {e}")
            return
        self.logger.info(
            f"Late {action} completed after timeout",
            extra=log_extra(channel_id=channel_id),
        )
        if on_late is not None:
            on_late(channel_id)

    # ------------------------------------------------------------------
    # Membership snapshot
    # ------------------------------------------------------------------

    def _track_join(self, channel_id: int, member_id: int) -> None:
        self._voice_channel_members.setdefault(channel_id, set()).add(member_id)

    def _track_leave(self, channel_id: int, member_id: int) -> int:
        members = self._voice_channel_members.get(channel_id)
        if members is None:
            return 0
        members.discard(member_id)
        if not members:
            del self._voice_channel_members[channel_id]
            return 0
        return len(members)

    def get_voice_channel_members(self, channel_id: int) -> list[int]:
        """Return the members the snapshot believes are in ``channel_id``."""
        return sorted(self._voice_channel_members.get(channel_id, ()))

    def replace_channel_members(self, channel_id: int, members: Iterable[int]) -> None:
        """Overwrite the snapshot for one channel with a live membership list."""
        members = set(members)
        if members:
            self._voice_channel_members[channel_id] = members
        else:
            self._voice_channel_members.pop(channel_id, None)

    # ------------------------------------------------------------------
    # Creation dedupe
    # ------------------------------------------------------------------

    def _mark_user_creating(self, guild_id: int, user_id: int) -> None:
        self._users_creating_channels.add((guild_id, user_id))

    def _unmark_user_creating(self, guild_id: int, user_id: int) -> None:
        self._users_creating_channels.discard((guild_id, user_id))

    def _is_user_creating(self, guild_id: int, user_id: int) -> bool:
        return (guild_id, user_id) in self._users_creating_channels

    async def _delayed_unmark_user_creating(
        self, guild_id: int, user_id: int, delay: float | None = None
    ) -> None:
        """Unmark a user after an optional delay to absorb duplicate events."""
        if delay and delay > 0:
            await asyncio.sleep(delay)
        self._unmark_user_creating(guild_id, user_id)

    # ------------------------------------------------------------------
    # Prompt listeners
    # ------------------------------------------------------------------

    def add_prompt_listener(self, listener: PromptListener) -> None:
        """Register a coroutine called with each new ``ConfigurationPrompt``."""
        self._prompt_listeners.append(listener)

    def _emit_prompt(self, prompt: ConfigurationPrompt) -> None:
        for listener in self._prompt_listeners:
            self._spawn(listener(prompt), f"prompt.{prompt.temp_channel_id}")

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_event(self, event: ChannelEvent) -> None:
        """Route one ingress event. Called by the dispatcher."""
        if isinstance(event, MemberJoinedChannel):
            await self.member_joined(
                event.guild_id, event.channel_id, event.member_id, event.display_name
            )
        elif isinstance(event, MemberLeftChannel):
            await self.member_left(event.guild_id, event.channel_id, event.member_id)
        elif isinstance(event, RemoteChannelDeleted):
            await self.channel_deleted(event.guild_id, event.channel_id)
        else:
            self.logger.warning("Ignoring unknown event %r", event)

    async def member_joined(
        self,
        guild_id: int,
        channel_id: int,
        member_id: int,
        display_name: str = "",
    ) -> int | None:
        """
        Record a join and, if ``channel_id`` is a lobby, spawn a temp channel.

        Returns:
            The new temp channel id, or None when nothing was created
        """
        self._ensure_initialized()
        self._track_join(channel_id, member_id)

        if await self.registry.is_lobby(channel_id) is None:
            return None

        if self._is_user_creating(guild_id, member_id):
            self.logger.debug(
                "Ignoring duplicate lobby join - creation already in progress",
                extra=log_extra(guild_id, channel_id, member_id),
            )
            return None

        self._mark_user_creating(guild_id, member_id)
        try:
            return await self._spawn_temp_channel(
                guild_id, channel_id, member_id, display_name
            )
        finally:
            self._spawn(
                self._delayed_unmark_user_creating(
                    guild_id, member_id, delay=self._creation_unmark_delay
                ),
                f"unmark_user.{guild_id}.{member_id}",
            )

    def _temp_channel_name(self, display_name: str, member_id: int) -> str:
        name = self._temp_name_format.format(name=display_name or str(member_id))
        return name[:MAX_CHANNEL_NAME_LENGTH]

    async def _spawn_temp_channel(
        self, guild_id: int, lobby_id: int, member_id: int, display_name: str
    ) -> int | None:
        extra = log_extra(guild_id, lobby_id, member_id)
        self.logger.info(f"{display_name or member_id} joined lobby {lobby_id}", extra=extra)

        try:
            lobby_overlay: ChannelPermissionOverlay = await self.remote_call(
                self.gateway.get_channel_overlay(lobby_id),
                action="get_channel_overlay",
                channel_id=lobby_id,
            )
            category_id = await self.remote_call(
                self.gateway.get_channel_category(lobby_id),
                action="get_channel_category",
                channel_id=lobby_id,
            )
        except NotFoundError:
            self.logger.warning(
                f"Lobby {lobby_id} is registered but no longer exists; unregistering",
                extra=extra,
            )
            await self.registry.unregister_lobby(lobby_id)
            return None
        except RemoteError as e:
            self.logger.error(f"Could not read lobby {lobby_id}: {e}", extra=extra)
            return None

        overlay = project_overlay(lobby_overlay, member_id, self._owner_permissions)
        name = self._temp_channel_name(display_name, member_id)

        async def _register(new_channel_id: int) -> None:
            await self.registry.register_temp(new_channel_id, guild_id, member_id, lobby_id)

        try:
            channel_id = await self._run_creation(
                self.gateway.create_voice_channel(guild_id, name, overlay, category_id),
                _register,
                action="create_temp_channel",
                on_late=self._schedule_emptiness_check,
            )
        except (LifecycleError, DatabaseError) as e:
            self.logger.error(
                f"Temp channel creation failed for lobby {lobby_id}: {e}", extra=extra
            )
            return None

        try:
            await self.remote_call(
                self.gateway.move_member(guild_id, member_id, channel_id),
                action="move_member",
                channel_id=channel_id,
            )
        except RemoteError as e:
            # Channel stays registered; an empty orphan is collected later
            self.logger.warning(
                f"Could not move member into temp channel {channel_id}: {e}",
                extra=log_extra(guild_id, channel_id, member_id),
            )
            self._schedule_emptiness_check(channel_id)
            return channel_id

        self._track_join(channel_id, member_id)
        self._emit_prompt(
            ConfigurationPrompt(
                temp_channel_id=channel_id, owner_id=member_id, guild_id=guild_id
            )
        )
        return channel_id

    async def member_left(self, guild_id: int, channel_id: int, member_id: int) -> bool:
        """
        Record a leave; delete the channel if it is a temp channel now empty.

        Returns:
            True if a temp channel was cleaned up
        """
        self._ensure_initialized()
        remaining = self._track_leave(channel_id, member_id)
        if remaining:
            return False
        if await self.registry.temp_record(channel_id) is None:
            return False
        self.logger.info(
            f"Temp channel {channel_id} is now empty, performing immediate cleanup",
            extra=log_extra(guild_id, channel_id, member_id),
        )
        return await self.cleanup_empty_channel(channel_id)

    async def _delete_remote(self, channel_id: int) -> None:
        await self.remote_call(
            self.gateway.delete_channel(channel_id),
            action="delete_channel",
            channel_id=channel_id,
        )

    async def cleanup_empty_channel(self, channel_id: int) -> bool:
        """
        Delete an empty temp channel and drop its registry record.

        Remote failures never keep the record: a channel that is already gone,
        that the bot may not delete, or that keeps failing is unregistered all
        the same.

        Returns:
            True if this call removed the registry record
        """
        if channel_id in self._channels_being_cleaned:
            return False
        self._channels_being_cleaned.add(channel_id)
        try:
            try:
                await retry_async(self._delete_remote, channel_id, config_name="cleanup")
                self.logger.info(
                    f"Successfully deleted empty channel {channel_id}",
                    extra=log_extra(channel_id=channel_id),
                )
            except NotFoundError:
                self.logger.info(f"Channel {channel_id} already deleted during cleanup")
            except ForbiddenError as e:
                self.logger.warning(
                    f"Insufficient permissions to delete channel {channel_id}: {e}, removing from tracking"
                )
            except RemoteError as e:
                self.logger.error(
                    f"Giving up deleting channel {channel_id}: {e}, removing from tracking"
                )

            self._voice_channel_members.pop(channel_id, None)
            return await self.registry.unregister_temp(channel_id)
        finally:
            self._channels_being_cleaned.discard(channel_id)

    def _schedule_emptiness_check(self, channel_id: int) -> asyncio.Task:
        """Clean up ``channel_id`` after a delay if nobody has joined it."""
        delay = self._orphan_cleanup_delay

        async def check_after_delay() -> None:
            await asyncio.sleep(delay)
            if self._voice_channel_members.get(channel_id):
                self.logger.info(
                    f"Channel {channel_id} no longer empty, skipping cleanup"
                )
                return
            if await self.registry.temp_record(channel_id) is None:
                return
            await self.cleanup_empty_channel(channel_id)

        return self._spawn(check_after_delay(), f"cleanup_after_delay.{channel_id}")

    async def channel_deleted(self, guild_id: int, channel_id: int) -> None:
        """Forget a channel that was deleted on the platform. Idempotent."""
        self._voice_channel_members.pop(channel_id, None)
        if await self.registry.unregister_lobby(channel_id):
            self.logger.info(
                f"Lobby {channel_id} was deleted; unregistered",
                extra=log_extra(guild_id, channel_id),
            )
        if await self.registry.unregister_temp(channel_id):
            self.logger.info(
                f"Temp channel {channel_id} was deleted; unregistered",
                extra=log_extra(guild_id, channel_id),
            )

    async def guild_removed(self, guild_id: int) -> dict[str, int]:
        """Drop every record for a guild the bot is no longer part of."""
        for temp in await self.registry.all_temps():
            if temp.guild_id == guild_id:
                self._voice_channel_members.pop(temp.channel_id, None)
        return await self.registry.purge_guild(guild_id)

    # ------------------------------------------------------------------
    # Command surface
    # ------------------------------------------------------------------

    async def _check_manage_channels(self, guild_id: int, admin_id: int) -> str | None:
        """Return an error code unless ``admin_id`` may manage channels."""
        try:
            allowed = await self.remote_call(
                self.gateway.member_can_manage_channels(guild_id, admin_id),
                action="member_can_manage_channels",
            )
        except RemoteError as e:
            self.logger.warning(f"Permission check failed for {admin_id}: {e}")
            return e.code
        return None if allowed else "UNAUTHORIZED"

    async def handle_create_lobby(
        self, guild_id: int, admin_id: int, name: str | None = None
    ) -> VoiceChannelResult:
        """Create a new lobby voice channel and register it."""
        self._ensure_initialized()
        error = await self._check_manage_channels(guild_id, admin_id)
        if error:
            return VoiceChannelResult(success=False, error=error)

        lobby_name = normalize_channel_name(
            self._default_lobby_name if name is None else name
        )
        if lobby_name is None:
            return VoiceChannelResult(success=False, error="INVALID_NAME")

        async def _register(channel_id: int) -> None:
            await self.registry.register_lobby(channel_id, guild_id)

        try:
            channel_id = await self._run_creation(
                self.gateway.create_voice_channel(
                    guild_id, lobby_name, ChannelPermissionOverlay()
                ),
                _register,
                action="create_lobby",
            )
        except LifecycleError as e:
            self.logger.error(
                f"Lobby creation failed: {e}", extra=log_extra(guild_id, user_id=admin_id)
            )
            return VoiceChannelResult(success=False, error=e.code)
        except DatabaseError as e:
            self.logger.error(f"Lobby creation failed: {e}", extra=log_extra(guild_id))
            return VoiceChannelResult(success=False, error="UNKNOWN")

        return VoiceChannelResult(
            success=True, channel_id=channel_id, metadata={"name": lobby_name}
        )

    async def handle_convert_to_lobby(
        self, guild_id: int, admin_id: int, channel_id: int
    ) -> VoiceChannelResult:
        """Register an existing voice channel as a lobby."""
        self._ensure_initialized()
        error = await self._check_manage_channels(guild_id, admin_id)
        if error:
            return VoiceChannelResult(success=False, channel_id=channel_id, error=error)

        try:
            exists = await self.remote_call(
                self.gateway.channel_exists(channel_id),
                action="channel_exists",
                channel_id=channel_id,
            )
        except RemoteError as e:
            return VoiceChannelResult(success=False, channel_id=channel_id, error=e.code)
        if not exists:
            return VoiceChannelResult(
                success=False, channel_id=channel_id, error="CHANNEL_GONE"
            )

        try:
            await self.registry.register_lobby(channel_id, guild_id)
        except ConflictError as e:
            self.logger.info(f"Refusing to convert channel {channel_id}: {e}")
            return VoiceChannelResult(success=False, channel_id=channel_id, error=e.code)

        return VoiceChannelResult(success=True, channel_id=channel_id)

    async def handle_remove_lobby(
        self, guild_id: int, admin_id: int, channel_id: int
    ) -> VoiceChannelResult:
        """Stop treating ``channel_id`` as a lobby. The channel itself is kept."""
        self._ensure_initialized()
        error = await self._check_manage_channels(guild_id, admin_id)
        if error:
            return VoiceChannelResult(success=False, channel_id=channel_id, error=error)

        if await self.registry.is_lobby(channel_id) != guild_id:
            return VoiceChannelResult(
                success=False, channel_id=channel_id, error="NOT_MANAGED"
            )
        await self.registry.unregister_lobby(channel_id)
        return VoiceChannelResult(success=True, channel_id=channel_id)

    async def handle_rename_request(
        self, channel_id: int, requester_id: int, new_name: str
    ) -> VoiceChannelResult:
        """Rename a temp channel on behalf of its owner."""
        self._ensure_initialized()
        record = await self.registry.temp_record(channel_id)
        if record is None:
            return VoiceChannelResult(
                success=False, channel_id=channel_id, error="NOT_MANAGED"
            )
        if record.owner_id != requester_id:
            self.logger.info(
                "Rejected rename by non-owner",
                extra=log_extra(record.guild_id, channel_id, requester_id),
            )
            return VoiceChannelResult(
                success=False, channel_id=channel_id, error="UNAUTHORIZED"
            )

        name = normalize_channel_name(new_name)
        if name is None:
            return VoiceChannelResult(
                success=False, channel_id=channel_id, error="INVALID_NAME"
            )

        try:
            await self.remote_call(
                self.gateway.rename_channel(channel_id, name),
                action="rename_channel",
                channel_id=channel_id,
            )
        except NotFoundError:
            return VoiceChannelResult(
                success=False, channel_id=channel_id, error="CHANNEL_GONE"
            )
        except RemoteError as e:
            self.logger.warning(f"Rename of channel {channel_id} failed: {e}")
            return VoiceChannelResult(
                success=False,
                channel_id=channel_id,
                error="REMOTE_ERROR",
                metadata={"cause": e.code},
            )

        self.logger.info(
            f"Renamed temp channel {channel_id} to '{name}'",
            extra=log_extra(record.guild_id, channel_id, requester_id),
        )
        return VoiceChannelResult(
            success=True, channel_id=channel_id, metadata={"name": name}
        )

    async def health_check(self) -> dict[str, Any]:
        """Return health information for the voice service."""
        base_health = await super().health_check()
        try:
            lobbies = len(await self.registry.all_lobbies())
            temps = len(await self.registry.all_temps())
        except DatabaseError:
            lobbies = temps = "error"
        return {
            **base_health,
            "lobby_channels": lobbies,
            "temp_channels": temps,
            "tracked_channels": len(self._voice_channel_members),
        }
