# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
playerctl implementations of the adapter interfaces.

Invocation shape: ``playerctl [--player=<id>] <verb> [args...]``.  All
adapters share one CommandRunner; spawn failures are logged here and
turned into False/None.
"""

import logging

from ..errors import ExecutionFailure, ParseFailure
from ..metadata_format import FORMAT_TEMPLATE, parse_metadata_line
from ..models import LoopStatus, MediaDescriptor, ShuffleStatus
from ..runner import CommandResult, CommandRunner
from .base import (MetadataQuery, PlaybackControl, RosterQuery, SystemProbe,
                   VolumeControl, check_volume)

logger = logging.getLogger("playersync.playerctl")

MICROS_PER_SECOND = 1_000_000


def _seconds(micros: int) -> str:
    return str(micros / MICROS_PER_SECOND)


class _PlayerctlAdapter:

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    async def _run(self, args, player: str | None = None) -> CommandResult | None:
        try:
            return await self.runner.run_once(args, player)
        except ExecutionFailure as e:
            logger.error("%s", e)
            return None

    async def _ok(self, args, player: str | None = None) -> bool:
        result = await self._run(args, player)
        return result is not None and result.ok

    async def _output(self, args, player: str | None = None) -> str | None:
        result = await self._run(args, player)
        if result is None or not result.ok:
            return None
        return result.stdout.strip()


class PlayerctlSystem(_PlayerctlAdapter, SystemProbe):

    async def is_installed(self) -> bool:
        return self.runner.is_installed()

    async def get_version(self) -> str | None:
        return await self._output(["--version"])


class PlayerctlRoster(_PlayerctlAdapter, RosterQuery):

    async def list_players(self) -> list[str]:
        output = await self._output(["--list-all"])
        if not output:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def has_active_player(self) -> bool:
        return await self._ok(["status"])


class PlayerctlMetadata(_PlayerctlAdapter, MetadataQuery):
    """One-shot metadata.  Art is resolved the same way the stream resolves it."""

    def __init__(self, runner: CommandRunner, art_server=None):
        super().__init__(runner)
        self.art_server = art_server

    async def get_metadata(self, player: str | None = None) -> MediaDescriptor | None:
        output = await self._output(["metadata", "--format", FORMAT_TEMPLATE], player)
        if not output:
            return None
        try:
            media = parse_metadata_line(output.splitlines()[0])
        except ParseFailure as e:
            logger.warning("Dropping metadata for %s: %s", player or "default player", e)
            return None
        if self.art_server is not None and media.art_url:
            media = media.with_changes(art_url=await self.art_server.resolve(media.art_url))
        return media


class PlayerctlPlayback(_PlayerctlAdapter, PlaybackControl):

    async def play(self, player=None) -> bool:
        return await self._ok(["play"], player)

    async def pause(self, player=None) -> bool:
        return await self._ok(["pause"], player)

    async def stop(self, player=None) -> bool:
        return await self._ok(["stop"], player)

    async def play_pause(self, player=None) -> bool:
        return await self._ok(["play-pause"], player)

    async def next(self, player=None) -> bool:
        return await self._ok(["next"], player)

    async def previous(self, player=None) -> bool:
        return await self._ok(["previous"], player)

    async def get_shuffle(self, player=None) -> ShuffleStatus | None:
        output = await self._output(["shuffle"], player)
        return ShuffleStatus.parse(output) if output is not None else None

    async def set_shuffle(self, status: ShuffleStatus, player=None) -> bool:
        return await self._ok(["shuffle", ShuffleStatus(status).value], player)

    async def get_loop(self, player=None) -> LoopStatus | None:
        output = await self._output(["loop"], player)
        return LoopStatus.parse(output) if output is not None else None

    async def set_loop(self, status: LoopStatus, player=None) -> bool:
        return await self._ok(["loop", LoopStatus(status).value], player)

    async def get_position(self, player=None) -> int | None:
        output = await self._output(["position"], player)
        if not output:
            return None
        try:
            return round(float(output) * MICROS_PER_SECOND)
        except ValueError:
            logger.warning("Unexpected position output: %r", output)
            return None

    async def set_position(self, position: int, player=None) -> bool:
        return await self._ok(["position", _seconds(max(0, position))], player)

    async def seek(self, offset: int, player=None) -> bool:
        # playerctl takes the sign as a suffix: "5.0+" / "5.0-"
        sign = "+" if offset >= 0 else "-"
        return await self._ok(["position", _seconds(abs(offset)) + sign], player)


class PlayerctlVolume(_PlayerctlAdapter, VolumeControl):

    async def get_volume(self, player=None) -> int | None:
        output = await self._output(["volume"], player)
        if not output:
            return None
        try:
            fraction = float(output)
        except ValueError:
            logger.warning("Unexpected volume output: %r", output)
            return None
        return max(0, min(100, round(fraction * 100)))

    async def set_volume(self, volume: int, player=None) -> bool:
        check_volume(volume)
        return await self._ok(["volume", str(volume / 100)], player)
