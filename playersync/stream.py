# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
MetadataStream — supervises ``playerctl metadata --follow``.

The follow process streams one formatted line per metadata change and can
die at any time (player quits, D-Bus hiccup, playerctl crash).  This class
keeps exactly one such process alive while a caller is listening, restarting
it with a fixed delay up to ``max_restarts`` times in a row.

States:

    IDLE ──listen()──> STARTING ──spawned──> LISTENING
                          ^                     │ unplanned exit
                          │ delay elapsed       v
                          └──────────── AWAITING_RESTART
    LISTENING/AWAITING_RESTART ──bound reached──> FAILED
    any ──stop_listening()──> IDLE

Parsed lines are change-gated (position is ignored) before being published
on a Broadcaster.  Only changed data resets the restart counter.  Subscribers
see NoActivePlayer when playerctl reports that no players exist, and a single
StreamExhausted before the channel closes once the restart bound is reached.
"""

import asyncio
import logging
from enum import Enum

from .lib.channel import Broadcaster, Subscription
from .lib.errors import ExecutionFailure, NoActivePlayer, ParseFailure, StreamExhausted
from .lib.metadata_format import FORMAT_TEMPLATE, parse_metadata_line
from .lib.models import MediaDescriptor
from .lib.runner import CommandRunner, StreamHandle

MAX_RESTARTS = 5
RESTART_DELAY = 2.0  # seconds
NO_PLAYERS_MARKER = "no players found"


class StreamState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    AWAITING_RESTART = "awaiting_restart"
    FAILED = "failed"


class MetadataStream:

    def __init__(self, runner: CommandRunner, art_server=None, *,
                 max_restarts: int = MAX_RESTARTS,
                 restart_delay: float = RESTART_DELAY,
                 logger: logging.Logger | None = None,
                 log_level: int | str | None = None):
        self._runner = runner
        self._art_server = art_server
        self.max_restarts = max_restarts
        self.restart_delay = restart_delay
        self.log = logger or logging.getLogger("playersync.stream")
        if log_level is not None:
            self.log.setLevel(log_level)

        self.state = StreamState.IDLE
        self._should_listen = False
        self._player: str | None = None
        self._attempts = 0
        self._last_emitted: MediaDescriptor | None = None
        self._channel: Broadcaster | None = None
        self._handle: StreamHandle | None = None
        self._pump_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._start_task: asyncio.Future | None = None
        self._restart_handle: asyncio.TimerHandle | None = None
        # listen/stop_listening run one at a time; every stop bumps the generation
        self._lock = asyncio.Lock()
        self._generation = 0

    @property
    def player(self) -> str | None:
        return self._player

    @property
    def restart_attempts(self) -> int:
        return self._attempts

    @property
    def is_listening(self) -> bool:
        return self._should_listen

    # ── Public API ──

    async def listen(self, player: str | None = None) -> Subscription:
        """Start following *player* (or playerctl's default) and subscribe.

        Listening to the player already being followed just adds a
        subscriber; anything else tears the current process down first.
        Overlapping calls are serialized, so at most one process is live.
        """
        async with self._lock:
            if (self._should_listen and self._channel is not None
                    and not self._channel.closed and player == self._player):
                return self._channel.subscribe()

            await self._stop()
            self._channel = Broadcaster()
            subscription = self._channel.subscribe()
            self._should_listen = True
            self._player = player
            self._attempts = 0
            self._last_emitted = None
            await self._start()
            return subscription

    async def stop_listening(self):
        """Kill the process, cancel any pending restart, close the channel.  Idempotent."""
        async with self._lock:
            await self._stop()

    async def _stop(self):
        self._should_listen = False
        self._generation += 1

        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

        if self._handle is not None:
            self._handle.kill()
            self._handle = None

        for attr in ("_start_task", "_pump_task", "_stderr_task"):
            task = getattr(self, attr)
            setattr(self, attr, None)
            if task is None or task is asyncio.current_task():
                continue
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass

        if self._channel is not None:
            self._channel.close()
            self._channel = None

        if self.state is not StreamState.IDLE:
            self.log.info("Stopped metadata stream (%s)", self._player or "default player")
        self._attempts = 0
        self._last_emitted = None
        self._player = None
        self.state = StreamState.IDLE

    # ── Process lifecycle ──

    async def _start(self):
        generation = self._generation
        self.state = StreamState.STARTING
        args = ["metadata", "--follow", "--format", FORMAT_TEMPLATE]
        try:
            handle = await self._runner.start_streaming(args, self._player)
        except ExecutionFailure as e:
            self.log.error("Could not start metadata stream: %s", e)
            if generation == self._generation:
                self._on_exit(None, None)
            return

        if not self._should_listen or generation != self._generation:
            # stopped (or replaced) while we were spawning
            handle.kill()
            return

        self._handle = handle
        self.state = StreamState.LISTENING
        self._stderr_task = asyncio.create_task(self._read_stderr(handle))
        self._pump_task = asyncio.create_task(self._pump(handle))

    async def _pump(self, handle: StreamHandle):
        code = None
        try:
            async for line in handle.stdout_lines():
                if line.strip():
                    await self._handle_line(line)
            code = await handle.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.log.error("Error reading metadata stream: %s", e)
            handle.kill()
        self._on_exit(handle, code)

    async def _read_stderr(self, handle: StreamHandle):
        async for line in handle.stderr_lines():
            if NO_PLAYERS_MARKER in line.lower():
                self.log.info("playerctl reports no players")
                if self._channel is not None:
                    self._channel.publish_error(NoActivePlayer())
            elif line.strip():
                self.log.debug("playerctl stderr: %s", line)

    def _on_exit(self, handle: StreamHandle | None, code: int | None):
        if handle is not self._handle:
            return  # a process we already replaced or killed
        self._handle = None
        self.log.info("Metadata process exited (code %s)", code)

        if not self._should_listen:
            return

        if self._attempts < self.max_restarts:
            self._attempts += 1
            self.state = StreamState.AWAITING_RESTART
            self.log.warning("Restarting metadata stream in %.1fs (attempt %d/%d)",
                             self.restart_delay, self._attempts, self.max_restarts)
            loop = asyncio.get_running_loop()
            self._restart_handle = loop.call_later(self.restart_delay, self._fire_restart)
        else:
            self._fail()

    def _fire_restart(self):
        self._restart_handle = None
        if not self._should_listen:
            return
        self._start_task = asyncio.ensure_future(self._start())

    def _fail(self):
        self.state = StreamState.FAILED
        self._should_listen = False
        error = StreamExhausted(self._attempts)
        self.log.error("%s; giving up until listen() is called again", error)
        if self._channel is not None:
            self._channel.publish_error(error)
            self._channel.close()
            self._channel = None

    # ── Line handling ──

    async def _handle_line(self, line: str):
        try:
            media = parse_metadata_line(line)
        except ParseFailure as e:
            self.log.warning("Dropping metadata line: %s", e)
            return

        if media.same_content(self._last_emitted):
            return
        self._last_emitted = media

        if self._attempts:
            self.log.info("Metadata stream recovered after %d restart(s)", self._attempts)
            self._attempts = 0

        if self._art_server is not None and media.art_url:
            media = media.with_changes(art_url=await self._art_server.resolve(media.art_url))

        self.log.debug("Stream update: %s", media)
        if self._channel is not None:
            self._channel.publish(media)
