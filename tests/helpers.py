"""Fakes shared by the stream, engine and service tests.  No real playerctl."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from playersync.lib.adapters import (Backend, MetadataQuery, PlaybackControl, RosterQuery,
                                     SystemProbe, VolumeControl, check_volume)
from playersync.lib.channel import Broadcaster, Subscription
from playersync.lib.errors import ExecutionFailure
from playersync.lib.metadata_format import DELIMITER
from playersync.lib.models import LoopStatus, MediaDescriptor, PlaybackStatus, ShuffleStatus


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it holds; fail the test after *timeout*."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within %.1fs" % timeout)
        await asyncio.sleep(0.005)


def metadata_line(title: str = "Song A", artist: str = "Artist", album: str = "Album",
                  status: str = "Playing", player: str = "spotify", position: str = "1000000",
                  length: str = "200000000", art_url: str = "") -> str:
    return DELIMITER.join([title, artist, album, status, player, position, length, art_url])


def media(title: str = "Song A", player: str = "spotify",
          status: PlaybackStatus = PlaybackStatus.PLAYING, **extra: Any) -> MediaDescriptor:
    return MediaDescriptor(title=title, artist="Artist", album="Album",
                           status=status, player=player, **extra)


# ── Streaming process fakes ──


class FakeHandle:
    """Stands in for runner.StreamHandle.  Tests drive stdout/stderr/exit by hand."""

    def __init__(self, args: list[str]) -> None:
        self.args = args
        self.killed = False
        self._stdout: asyncio.Queue = asyncio.Queue()
        self._stderr: asyncio.Queue = asyncio.Queue()
        self._exit: asyncio.Future = asyncio.get_running_loop().create_future()

    def emit(self, line: str) -> None:
        self._stdout.put_nowait(line)

    def emit_stderr(self, line: str) -> None:
        self._stderr.put_nowait(line)

    def exit(self, code: int = 1) -> None:
        if self._exit.done():
            return
        self._stdout.put_nowait(None)
        self._stderr.put_nowait(None)
        self._exit.set_result(code)

    async def _lines(self, queue: asyncio.Queue):
        while True:
            line = await queue.get()
            if line is None:
                return
            yield line

    def stdout_lines(self):
        return self._lines(self._stdout)

    def stderr_lines(self):
        return self._lines(self._stderr)

    @property
    def exited(self) -> bool:
        return self._exit.done()

    async def wait(self) -> int:
        return await self._exit

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeStreamRunner:
    """Records every spawn and hands out FakeHandles."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.calls: list[tuple[list[str], str | None]] = []
        self.fail_spawn = False
        self.spawn_delay = 0.0

    async def start_streaming(self, args, player=None):
        self.calls.append((list(args), player))
        if self.spawn_delay:
            await asyncio.sleep(self.spawn_delay)
        if self.fail_spawn:
            raise ExecutionFailure(["playerctl", *args], OSError("spawn failed"))
        handle = FakeHandle(list(args))
        self.handles.append(handle)
        return handle

    @property
    def latest(self) -> FakeHandle:
        return self.handles[-1]

    @property
    def live(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.exited]


class FakeArtServer:

    def __init__(self) -> None:
        self.resolved: list[str] = []
        self.stopped = False

    async def resolve(self, art_url):
        self.resolved.append(art_url)
        if art_url and art_url.startswith("file://"):
            return "http://127.0.0.1:8765/art/cover.jpg"
        return art_url

    async def stop(self) -> None:
        self.stopped = True


# ── Backend fakes ──


class FakeWorld:
    """What the fake players report, plus a log of every command sent."""

    def __init__(self, players: list[str] | None = None) -> None:
        self.installed = True
        self.version = "v2.4.1"
        self.players: list[str] = list(players or [])
        self.metadata: dict[str, MediaDescriptor] = {}
        self.volume = 40
        self.shuffle = ShuffleStatus.OFF
        self.loop = LoopStatus.NONE
        self.position = 0
        self.commands_ok = True
        self.calls: list[tuple] = []
        self.roster_gate: asyncio.Event | None = None
        self.roster_calls = 0


class FakeSystem(SystemProbe):

    def __init__(self, world: FakeWorld) -> None:
        self.world = world

    async def is_installed(self) -> bool:
        return self.world.installed

    async def get_version(self) -> str | None:
        return self.world.version


class FakeRoster(RosterQuery):

    def __init__(self, world: FakeWorld) -> None:
        self.world = world

    async def list_players(self) -> list[str]:
        self.world.roster_calls += 1
        if self.world.roster_gate is not None:
            await self.world.roster_gate.wait()
        return list(self.world.players)

    async def has_active_player(self) -> bool:
        return bool(self.world.players)


class FakeMetadata(MetadataQuery):

    def __init__(self, world: FakeWorld) -> None:
        self.world = world

    async def get_metadata(self, player=None):
        if player is None:
            player = self.world.players[0] if self.world.players else None
        return self.world.metadata.get(player)


class FakePlayback(PlaybackControl):

    def __init__(self, world: FakeWorld) -> None:
        self.world = world

    async def _verb(self, verb: str, player) -> bool:
        self.world.calls.append((verb, player))
        return self.world.commands_ok

    async def play(self, player=None):
        return await self._verb("play", player)

    async def pause(self, player=None):
        return await self._verb("pause", player)

    async def stop(self, player=None):
        return await self._verb("stop", player)

    async def play_pause(self, player=None):
        return await self._verb("play-pause", player)

    async def next(self, player=None):
        return await self._verb("next", player)

    async def previous(self, player=None):
        return await self._verb("previous", player)

    async def get_shuffle(self, player=None):
        return self.world.shuffle

    async def set_shuffle(self, status, player=None):
        self.world.calls.append(("shuffle", status, player))
        if self.world.commands_ok:
            self.world.shuffle = status
        return self.world.commands_ok

    async def get_loop(self, player=None):
        return self.world.loop

    async def set_loop(self, status, player=None):
        self.world.calls.append(("loop", status, player))
        if self.world.commands_ok:
            self.world.loop = status
        return self.world.commands_ok

    async def get_position(self, player=None):
        return self.world.position

    async def set_position(self, position, player=None):
        self.world.calls.append(("position", position, player))
        return self.world.commands_ok

    async def seek(self, offset, player=None):
        self.world.calls.append(("seek", offset, player))
        return self.world.commands_ok


class FakeVolume(VolumeControl):

    def __init__(self, world: FakeWorld) -> None:
        self.world = world

    async def get_volume(self, player=None):
        return self.world.volume

    async def set_volume(self, volume, player=None):
        check_volume(volume)
        self.world.calls.append(("volume", volume, player))
        if self.world.commands_ok:
            self.world.volume = volume
        return self.world.commands_ok


def fake_backend(world: FakeWorld) -> Backend:
    return Backend(
        system=FakeSystem(world),
        roster=FakeRoster(world),
        metadata=FakeMetadata(world),
        playback=FakePlayback(world),
        volume=FakeVolume(world),
    )


class FakeMetadataStream:
    """Stands in for MetadataStream inside engine tests."""

    def __init__(self) -> None:
        self.listens: list[str | None] = []
        self.stops = 0
        self._channel: Broadcaster | None = None

    async def listen(self, player=None) -> Subscription:
        self.listens.append(player)
        self._channel = Broadcaster()
        return self._channel.subscribe()

    async def stop_listening(self) -> None:
        self.stops += 1
        if self._channel is not None:
            self._channel.close()
            self._channel = None

    @property
    def active(self) -> bool:
        return self._channel is not None

    def push(self, value: MediaDescriptor) -> None:
        assert self._channel is not None, "stream is not listening"
        self._channel.publish(value)

    def push_error(self, error: BaseException) -> None:
        assert self._channel is not None, "stream is not listening"
        self._channel.publish_error(error)


def drain(subscription: Subscription) -> list:
    """Pop everything already queued on *subscription* without waiting."""
    items = []
    while subscription.qsize():
        items.append(subscription._queue.get_nowait())
    return items
