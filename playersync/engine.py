# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
SyncEngine — one coherent, de-duplicated state feed over playerctl.

Four concurrent sources feed a single StateSnapshot:

    roster check     every 5s   re-lists players, picks/keeps the selection,
                                starts or stops syncing on (dis)appearance
    metadata stream  push       MetadataStream updates, attributed to the
                                selected player via is_same_logical_player
    metadata refresh every 3s   one-shot metadata, fallback for missed pushes
    volume sync      every 2s   volume of the selected player

All mutation goes through ``_update_state``: a new snapshot is built with
``with_changes`` and published exactly once, unless it equals the current
snapshot, in which case nothing is published.  Everything runs on one event
loop.  ``_refreshing`` stops two roster reconciliations from overlapping, and
``_sync_lock`` serializes switches, reconnects and sync start/stop so only one
follow process is ever attached.

Usage:
    engine = create_engine()
    await engine.initialize()
    sub = engine.subscribe()
    async for snapshot in sub: ...
    await engine.dispose()
"""

import asyncio
import logging

from .lib.adapters import Backend, check_volume, create_backend
from .lib.art_server import ArtServer
from .lib.channel import Broadcaster, ChannelClosed, Subscription
from .lib.config import cfg
from .lib.errors import NoActivePlayer, PlayersyncError
from .lib.identity import is_same_logical_player, resolve_roster_id
from .lib.models import (EMPTY_MEDIA, LoopStatus, MediaDescriptor, PlaybackStatus,
                         ShuffleStatus, StateSnapshot)
from .lib.runner import CommandRunner
from .stream import MAX_RESTARTS, RESTART_DELAY, MetadataStream

ROSTER_INTERVAL = 5.0
VOLUME_INTERVAL = 2.0
METADATA_INTERVAL = 3.0
SETTLE_DELAY = 0.1  # let a killed follow process die before reconnecting

INSTALL_HINT = (
    "playerctl is not installed on this system.\n"
    "Please install it using:\n"
    "sudo apt install playerctl (Debian/Ubuntu)\n"
    "sudo pacman -S playerctl (Arch)\n"
    "sudo dnf install playerctl (Fedora)"
)


class SyncEngine:

    def __init__(self, backend: Backend, stream: MetadataStream, *,
                 art_server: ArtServer | None = None,
                 roster_interval: float = ROSTER_INTERVAL,
                 volume_interval: float = VOLUME_INTERVAL,
                 metadata_interval: float = METADATA_INTERVAL,
                 settle_delay: float = SETTLE_DELAY,
                 logger: logging.Logger | None = None,
                 log_level: int | str | None = None):
        self.backend = backend
        self.stream = stream
        self.art_server = art_server
        self.roster_interval = roster_interval
        self.volume_interval = volume_interval
        self.metadata_interval = metadata_interval
        self.settle_delay = settle_delay
        self.log = logger or logging.getLogger("playersync.engine")
        if log_level is not None:
            self.log.setLevel(log_level)

        self._state = StateSnapshot.initial()
        self._changes = Broadcaster()
        self._refreshing = False
        self._disposed = False
        self._syncing = False
        # switch, reconnect and sync start/stop never interleave
        self._sync_lock = asyncio.Lock()

        self._roster_task: asyncio.Task | None = None
        self._volume_task: asyncio.Task | None = None
        self._metadata_task: asyncio.Task | None = None
        self._stream_task: asyncio.Task | None = None
        self._stream_subscription: Subscription | None = None

    # ── State access ──

    @property
    def state(self) -> StateSnapshot:
        return self._state

    def subscribe(self) -> Subscription:
        """Every snapshot published from now on, in order."""
        return self._changes.subscribe()

    def set_log_level(self, level: int | str):
        self.log.setLevel(level)
        self.log.info("Log level changed to %s", logging.getLevelName(self.log.level))

    def _update_state(self, **changes):
        state = self._state.with_changes(**changes)
        if state == self._state:
            return
        self._state = state
        self._changes.publish(state)

    def _target(self) -> str | None:
        return self._state.selected_player or None

    # ── Lifecycle ──

    async def initialize(self) -> bool:
        """Probe the install, pick a player, start syncing.  False if unusable."""
        self._update_state(is_loading=True, error_message="")
        try:
            installed = await self.backend.system.is_installed()
            self._update_state(is_installed=installed)
            if not installed:
                self.log.error("playerctl not found on PATH")
                self._update_state(error_message=INSTALL_HINT, is_loading=False)
                return False

            version = await self.backend.system.get_version()
            self.log.info("playerctl version: %s", version or "unknown")

            await self.refresh_roster_and_reconcile()
            if self._state.has_active_player:
                async with self._sync_lock:
                    await self._start_sync()

            self._start_roster_check()
            self._update_state(is_loading=False)
            return True
        except Exception as e:
            self.log.error("Error initializing: %s", e)
            self._update_state(error_message=f"Error initializing: {e}", is_loading=False)
            return False

    async def retry(self) -> bool:
        return await self.initialize()

    async def dispose(self):
        """Stop every timer and the stream, then close the state channel.  Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        await _cancel(self._roster_task)
        self._roster_task = None
        async with self._sync_lock:
            await self._stop_sync()
        if self.art_server is not None:
            await self.art_server.stop()
        self._changes.close()
        self.log.info("Engine disposed")

    # ── Roster reconciliation ──

    async def refresh_roster_and_reconcile(self) -> bool:
        """Re-list players and keep or replace the selection.

        Returns False without doing anything if a refresh is already in
        progress, and False if listing players failed.  A changed selection
        clears the displayed media and triggers a full reconnect.
        """
        if self._refreshing:
            self.log.debug("Skipping roster refresh - already in progress")
            return False

        self._refreshing = True
        try:
            players = await self.backend.roster.list_players()
            has_player = bool(players)
            previous = self._state.selected_player
            selected = previous
            needs_reconnect = False

            if not players:
                selected = ""
                self.log.debug("No players available")
            elif not selected:
                selected = players[0]
                needs_reconnect = True
                self.log.info("Auto-selecting first player: %s", selected)
            elif selected not in players:
                selected = players[0]
                needs_reconnect = True
                self.log.info("Player %s no longer available, switching to %s",
                              previous, selected)
            else:
                self.log.debug("Player %s still available", selected)

            cache = {k: v for k, v in self._state.player_media.items() if k in players}
            self._update_state(
                players=players,
                has_active_player=has_player,
                selected_player=selected,
                current_media=EMPTY_MEDIA if needs_reconnect or not has_player
                else self._state.current_media,
                player_media=cache,
            )

            if needs_reconnect and has_player and selected != previous:
                await self._reconnect(selected)
        except Exception as e:
            self.log.error("Error refreshing player list: %s", e)
            return False
        finally:
            self._refreshing = False
        return True

    async def _reconnect(self, player: str):
        async with self._sync_lock:
            self.log.info("Reconnecting to player %s", player)
            await self._stop_sync()
            await asyncio.sleep(self.settle_delay)
            await self._fetch_player_state(player)
            await self._start_sync(player, fetch_status=False)

    async def switch_player(self, player: str) -> bool:
        if player not in self._state.players:
            self._update_state(error_message=f"Player {player} is not available")
            return False

        async with self._sync_lock:
            self.log.info("Switching to player %s", player)
            self._update_state(selected_player=player, is_loading=True,
                               current_media=EMPTY_MEDIA)
            await self._stop_sync()
            await asyncio.sleep(self.settle_delay)
            await self._fetch_player_state(player)
            await self._start_sync(player, fetch_status=False)
            self._update_state(is_loading=False)
        return True

    async def _fetch_player_state(self, player: str):
        """Eager one-shot metadata, volume, shuffle and loop for *player*."""
        try:
            media = await self.backend.metadata.get_metadata(player)
            if media is not None:
                self._merge_media(media)
        except Exception as e:
            self.log.error("Error fetching metadata for %s: %s", player, e)
        await self.update_volume()
        await self.update_shuffle()
        await self.update_loop()

    # ── Sync start/stop ──

    async def _start_sync(self, player: str | None = None, fetch_status: bool = True):
        if self._disposed:
            return
        self._syncing = True
        if self._stream_task is None:
            await self._start_stream(player)
            if fetch_status:
                await self.update_volume()
                await self.update_shuffle()
                await self.update_loop()
        self._start_volume_sync()
        self._start_metadata_refresh()

    async def _stop_sync(self):
        self._syncing = False
        await self._stop_stream()
        await self._stop_volume_sync()
        await self._stop_metadata_refresh()

    async def _start_stream(self, player: str | None = None):
        target = player or self._target()
        subscription = await self.stream.listen(target)
        self._stream_subscription = subscription
        self._stream_task = asyncio.create_task(self._consume_stream(subscription))

    async def _stop_stream(self):
        if self._stream_subscription is not None:
            self._stream_subscription.cancel()
            self._stream_subscription = None
        task, self._stream_task = self._stream_task, None
        await _cancel(task)
        await self.stream.stop_listening()

    async def _consume_stream(self, subscription: Subscription):
        try:
            while True:
                try:
                    media = await subscription.get()
                except ChannelClosed:
                    self.log.info("Metadata stream closed")
                    break
                except NoActivePlayer as e:
                    self._update_state(current_media=EMPTY_MEDIA, has_active_player=False,
                                       error_message=e.message)
                except PlayersyncError as e:
                    # StreamExhausted lands here; the stream has given up
                    self.log.error("Metadata stream error: %s", e)
                    self._update_state(error_message=str(e))
                else:
                    self._merge_media(media)
        finally:
            if self._stream_task is asyncio.current_task():
                self._stream_task = None
                self._stream_subscription = None

    # ── Periodic timers ──

    def _start_roster_check(self):
        if self._roster_task is None:
            self._roster_task = asyncio.create_task(self._roster_check_loop())

    def _start_volume_sync(self):
        if self._volume_task is None:
            self.log.debug("Starting volume sync timer")
            self._volume_task = asyncio.create_task(self._volume_sync_loop())

    async def _stop_volume_sync(self):
        task, self._volume_task = self._volume_task, None
        await _cancel(task)

    def _start_metadata_refresh(self):
        if self._metadata_task is None:
            self.log.debug("Starting metadata refresh timer")
            self._metadata_task = asyncio.create_task(self._metadata_refresh_loop())

    async def _stop_metadata_refresh(self):
        task, self._metadata_task = self._metadata_task, None
        await _cancel(task)

    async def _roster_check_loop(self):
        while True:
            try:
                await asyncio.sleep(self.roster_interval)
                await self.refresh_roster_and_reconcile()
                has_player = bool(self._state.players)

                async with self._sync_lock:
                    if has_player and not self._syncing:
                        self.log.info("Player appeared, starting sync")
                        await self._start_sync()
                    elif not has_player and self._syncing:
                        self.log.info("All players gone, stopping sync")
                        await self._stop_sync()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.log.error("Error in roster check: %s", e)

    async def _volume_sync_loop(self):
        while True:
            try:
                await asyncio.sleep(self.volume_interval)
                if self._state.has_active_player and self._state.selected_player:
                    await self.update_volume()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.log.error("Error in volume sync: %s", e)

    async def _metadata_refresh_loop(self):
        while True:
            try:
                await asyncio.sleep(self.metadata_interval)
                if not self._state.has_active_player:
                    continue
                self.log.debug("Refreshing metadata for %s", self._state.selected_player)
                media = await self.backend.metadata.get_metadata(self._target())
                if media is not None:
                    self._merge_media(media)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.log.error("Error refreshing metadata: %s", e)

    # ── Merging ──

    def _merge_media(self, media: MediaDescriptor):
        """Change-gated merge of one report, from the stream or a one-shot fetch.

        Reports from other players only touch the per-player cache; the
        displayed media changes only for the selected (logical) player.
        Position-only differences never publish.
        """
        state = self._state
        selected = state.selected_player
        key = resolve_roster_id(media.player, state.players) if media.player else ""

        cache = dict(state.player_media)
        cache_changed = bool(key) and not media.same_content(cache.get(key))
        if cache_changed:
            cache[key] = media

        if is_same_logical_player(media.player, selected):
            if media.same_content(state.current_media) and not state.error_message:
                if cache_changed:
                    self._update_state(player_media=cache)
                return
            self.log.info("Now playing on %s: %s - %s (%s)", media.player,
                          media.artist, media.title, media.status.value)
            self._update_state(current_media=media, error_message="", player_media=cache)
        else:
            self.log.debug("Ignoring metadata from %s (selected: %s)", media.player, selected)
            if cache_changed:
                self._update_state(player_media=cache)

    # ── Status queries ──

    async def update_volume(self):
        volume = await self.backend.volume.get_volume(self._target())
        if volume is not None and volume != self._state.volume:
            self.log.debug("Volume %d -> %d", self._state.volume, volume)
            self._update_state(volume=volume)

    async def update_shuffle(self):
        status = await self.backend.playback.get_shuffle(self._target())
        if status is not None and status != self._state.shuffle:
            self._update_state(shuffle=status)

    async def update_loop(self):
        status = await self.backend.playback.get_loop(self._target())
        if status is not None and status != self._state.loop:
            self._update_state(loop=status)

    # ── Playback ──

    async def _pause_other_players(self, target: str | None):
        """Pause every other player that reports Playing.  Best effort."""
        if not target:
            return
        for player in self._state.players:
            if player == target:
                continue
            try:
                media = await self.backend.metadata.get_metadata(player)
                if media is not None and media.status is PlaybackStatus.PLAYING:
                    self.log.info("Auto-pausing other player: %s", player)
                    await self.backend.playback.pause(player)
            except Exception as e:
                self.log.debug("Could not check/pause %s: %s", player, e)

    async def _command(self, coro, failure_message: str) -> bool:
        ok = await coro
        if not ok:
            self._update_state(error_message=failure_message)
        return ok

    async def play(self) -> bool:
        target = self._target()
        await self._pause_other_players(target)
        return await self._command(self.backend.playback.play(target), "Failed to play")

    async def play_pause(self) -> bool:
        target = self._target()
        if self._state.current_media.status is not PlaybackStatus.PLAYING:
            await self._pause_other_players(target)
        return await self._command(self.backend.playback.play_pause(target),
                                   "Failed to toggle play/pause")

    async def pause(self) -> bool:
        return await self._command(self.backend.playback.pause(self._target()),
                                   "Failed to pause")

    async def stop(self) -> bool:
        return await self._command(self.backend.playback.stop(self._target()),
                                   "Failed to stop")

    async def next(self) -> bool:
        target = self._target()
        await self._pause_other_players(target)
        return await self._command(self.backend.playback.next(target),
                                   "Failed to skip to next track")

    async def previous(self) -> bool:
        target = self._target()
        await self._pause_other_players(target)
        return await self._command(self.backend.playback.previous(target),
                                   "Failed to skip to previous track")

    # ── Shuffle / loop ──

    async def toggle_shuffle(self) -> bool:
        ok = await self._command(self.backend.playback.toggle_shuffle(self._target()),
                                 "Failed to toggle shuffle")
        if ok:
            await self.update_shuffle()
        return ok

    async def set_shuffle(self, status: ShuffleStatus) -> bool:
        ok = await self._command(self.backend.playback.set_shuffle(status, self._target()),
                                 "Failed to set shuffle")
        if ok:
            await self.update_shuffle()
        return ok

    async def cycle_loop(self) -> bool:
        ok = await self._command(self.backend.playback.cycle_loop(self._target()),
                                 "Failed to cycle loop mode")
        if ok:
            await self.update_loop()
        return ok

    async def set_loop(self, status: LoopStatus) -> bool:
        ok = await self._command(self.backend.playback.set_loop(status, self._target()),
                                 "Failed to set loop mode")
        if ok:
            await self.update_loop()
        return ok

    # ── Volume ──

    async def set_volume(self, volume: int) -> bool:
        """Set volume 0..100.  Raises InvalidVolume before any external call."""
        check_volume(volume)
        ok = await self._command(self.backend.volume.set_volume(volume, self._target()),
                                 "Failed to set volume")
        if ok and volume != self._state.volume:
            self._update_state(volume=volume)
        return ok

    async def increase_volume(self, step: int = 5) -> bool:
        ok = await self._command(self.backend.volume.increase_volume(step, self._target()),
                                 "Failed to increase volume")
        if ok:
            await self.update_volume()
        return ok

    async def decrease_volume(self, step: int = 5) -> bool:
        ok = await self._command(self.backend.volume.decrease_volume(step, self._target()),
                                 "Failed to decrease volume")
        if ok:
            await self.update_volume()
        return ok

    async def mute(self) -> bool:
        return await self.set_volume(0)

    # ── Position ──

    async def get_position(self) -> int | None:
        """Current position in microseconds."""
        return await self.backend.playback.get_position(self._target())

    async def seek_to(self, position: int) -> bool:
        return await self._command(self.backend.playback.set_position(position, self._target()),
                                   "Failed to seek")

    async def seek(self, offset: int) -> bool:
        return await self._command(self.backend.playback.seek(offset, self._target()),
                                   "Failed to seek")

    async def seek_forward(self, seconds: int) -> bool:
        return await self._command(self.backend.playback.seek_forward(seconds, self._target()),
                                   "Failed to seek forward")

    async def seek_backward(self, seconds: int) -> bool:
        return await self._command(self.backend.playback.seek_backward(seconds, self._target()),
                                   "Failed to seek backward")


async def _cancel(task: asyncio.Task | None):
    if task is None or task is asyncio.current_task():
        return
    task.cancel()
    try:
        await task
    except (asyncio.CancelledError, Exception):
        pass


def create_engine(logger: logging.Logger | None = None) -> SyncEngine:
    """Build a playerctl-backed engine from config.json."""
    log = logger or logging.getLogger("playersync.engine")
    runner = CommandRunner(
        cfg("playerctl", "binary", default="playerctl"),
        float(cfg("playerctl", "timeout", default=5.0)))
    art_server = ArtServer(
        cfg("art_server", "host", default="127.0.0.1"),
        int(cfg("art_server", "port", default=8765)))
    stream = MetadataStream(
        runner, art_server,
        max_restarts=int(cfg("stream", "max_restarts", default=MAX_RESTARTS)),
        restart_delay=float(cfg("stream", "restart_delay", default=RESTART_DELAY)),
        logger=log.getChild("stream"))
    return SyncEngine(
        create_backend(runner, art_server), stream,
        art_server=art_server,
        roster_interval=float(cfg("sync", "roster_interval", default=ROSTER_INTERVAL)),
        volume_interval=float(cfg("sync", "volume_interval", default=VOLUME_INTERVAL)),
        metadata_interval=float(cfg("sync", "metadata_interval", default=METADATA_INTERVAL)),
        settle_delay=float(cfg("sync", "settle_delay", default=SETTLE_DELAY)),
        logger=log,
        log_level=cfg("logging", "level", default=None))
