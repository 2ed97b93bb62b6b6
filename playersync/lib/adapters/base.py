# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Abstract interfaces the engine depends on, one per responsibility.

Implementations must never raise for environmental failures: a command that
could not run returns False (verbs) or None (queries).  The single
exception is VolumeControl.set_volume, which raises InvalidVolume for an
out-of-range value before touching the external program.
"""

from abc import ABC, abstractmethod

from ..errors import InvalidVolume
from ..models import LoopStatus, MediaDescriptor, ShuffleStatus


def check_volume(volume: int) -> int:
    """Return *volume* unchanged if it is within 0..100, else raise InvalidVolume."""
    if isinstance(volume, bool) or not isinstance(volume, int) or not 0 <= volume <= 100:
        raise InvalidVolume(volume)
    return volume


class SystemProbe(ABC):

    @abstractmethod
    async def is_installed(self) -> bool: ...

    @abstractmethod
    async def get_version(self) -> str | None: ...


class RosterQuery(ABC):

    @abstractmethod
    async def list_players(self) -> list[str]:
        """Player identifiers in the order the external program reports them."""

    @abstractmethod
    async def has_active_player(self) -> bool: ...

    async def is_player_available(self, player: str) -> bool:
        return player in await self.list_players()


class MetadataQuery(ABC):

    @abstractmethod
    async def get_metadata(self, player: str | None = None) -> MediaDescriptor | None: ...


class PlaybackControl(ABC):

    @abstractmethod
    async def play(self, player: str | None = None) -> bool: ...

    @abstractmethod
    async def pause(self, player: str | None = None) -> bool: ...

    @abstractmethod
    async def stop(self, player: str | None = None) -> bool: ...

    @abstractmethod
    async def play_pause(self, player: str | None = None) -> bool: ...

    @abstractmethod
    async def next(self, player: str | None = None) -> bool: ...

    @abstractmethod
    async def previous(self, player: str | None = None) -> bool: ...

    # -- Shuffle / loop --

    @abstractmethod
    async def get_shuffle(self, player: str | None = None) -> ShuffleStatus | None: ...

    @abstractmethod
    async def set_shuffle(self, status: ShuffleStatus, player: str | None = None) -> bool: ...

    @abstractmethod
    async def get_loop(self, player: str | None = None) -> LoopStatus | None: ...

    @abstractmethod
    async def set_loop(self, status: LoopStatus, player: str | None = None) -> bool: ...

    async def toggle_shuffle(self, player: str | None = None) -> bool:
        current = await self.get_shuffle(player)
        if current is None:
            return False
        return await self.set_shuffle(current.toggled(), player)

    async def cycle_loop(self, player: str | None = None) -> bool:
        current = await self.get_loop(player)
        if current is None:
            return False
        return await self.set_loop(current.next_in_cycle(), player)

    # -- Position (microseconds) --

    @abstractmethod
    async def get_position(self, player: str | None = None) -> int | None: ...

    @abstractmethod
    async def set_position(self, position: int, player: str | None = None) -> bool: ...

    @abstractmethod
    async def seek(self, offset: int, player: str | None = None) -> bool:
        """Relative seek; positive *offset* moves forward."""

    async def seek_forward(self, seconds: int, player: str | None = None) -> bool:
        return await self.seek(abs(seconds) * 1_000_000, player)

    async def seek_backward(self, seconds: int, player: str | None = None) -> bool:
        return await self.seek(-abs(seconds) * 1_000_000, player)


class VolumeControl(ABC):

    @abstractmethod
    async def get_volume(self, player: str | None = None) -> int | None:
        """Current volume as a 0..100 percentage."""

    @abstractmethod
    async def set_volume(self, volume: int, player: str | None = None) -> bool:
        """Raises InvalidVolume if *volume* is outside 0..100."""

    async def increase_volume(self, step: int, player: str | None = None) -> bool:
        current = await self.get_volume(player)
        if current is None:
            return False
        return await self.set_volume(max(0, min(100, current + step)), player)

    async def decrease_volume(self, step: int, player: str | None = None) -> bool:
        return await self.increase_volume(-step, player)

    async def mute(self, player: str | None = None) -> bool:
        return await self.set_volume(0, player)
