"""
Pluggable backends for the sync engine, one interface per responsibility.

The engine only talks to the abstract interfaces in ``base``; ``create_backend``
wires the playerctl implementations around one shared CommandRunner.  Tests
build a Backend from fakes instead.

Interfaces:
  - ``SystemProbe``     – is the binary installed, which version
  - ``RosterQuery``     – list player identifiers
  - ``MetadataQuery``   – one-shot metadata for a player
  - ``PlaybackControl`` – play/pause/next/..., shuffle, loop, position
  - ``VolumeControl``   – 0..100 volume, validated before any call
"""

import logging
from dataclasses import dataclass

from ..runner import CommandRunner
from .base import (MetadataQuery, PlaybackControl, RosterQuery, SystemProbe,
                   VolumeControl, check_volume)
from .playerctl import (PlayerctlMetadata, PlayerctlPlayback, PlayerctlRoster,
                        PlayerctlSystem, PlayerctlVolume)

logger = logging.getLogger("playersync.adapters")

__all__ = [
    "Backend",
    "MetadataQuery",
    "PlaybackControl",
    "RosterQuery",
    "SystemProbe",
    "VolumeControl",
    "check_volume",
    "create_backend",
]


@dataclass
class Backend:
    system: SystemProbe
    roster: RosterQuery
    metadata: MetadataQuery
    playback: PlaybackControl
    volume: VolumeControl


def create_backend(runner: CommandRunner, art_server=None) -> Backend:
    """Build the playerctl backend around *runner*."""
    logger.info("Backend: %s (timeout %.1fs)", runner.binary, runner.timeout)
    return Backend(
        system=PlayerctlSystem(runner),
        roster=PlayerctlRoster(runner),
        metadata=PlayerctlMetadata(runner, art_server),
        playback=PlayerctlPlayback(runner),
        volume=PlayerctlVolume(runner),
    )
