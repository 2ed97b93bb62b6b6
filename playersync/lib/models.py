# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Value objects shared by the stream, the engine and its consumers.

Both MediaDescriptor and StateSnapshot are frozen: every mutation in the
engine builds a new value via ``with_changes`` and publishes it.  Structural
equality is what gates emission, so keep every field comparable.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping

UNKNOWN = "Unknown"


def _parse_enum(cls, text, default):
    value = (text or "").strip().lower()
    for member in cls:
        if member.value.lower() == value:
            return member
    return default


class PlaybackStatus(str, Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, text: str | None) -> "PlaybackStatus":
        return _parse_enum(cls, text, cls.UNKNOWN)


class ShuffleStatus(str, Enum):
    ON = "On"
    OFF = "Off"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, text: str | None) -> "ShuffleStatus":
        return _parse_enum(cls, text, cls.UNKNOWN)

    def toggled(self) -> "ShuffleStatus":
        return ShuffleStatus.OFF if self is ShuffleStatus.ON else ShuffleStatus.ON


class LoopStatus(str, Enum):
    NONE = "None"
    TRACK = "Track"
    PLAYLIST = "Playlist"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, text: str | None) -> "LoopStatus":
        return _parse_enum(cls, text, cls.UNKNOWN)

    def next_in_cycle(self) -> "LoopStatus":
        """None -> Track -> Playlist -> None.  Unknown restarts the cycle at None."""
        if self is LoopStatus.NONE:
            return LoopStatus.TRACK
        if self is LoopStatus.TRACK:
            return LoopStatus.PLAYLIST
        return LoopStatus.NONE


@dataclass(frozen=True)
class MediaDescriptor:
    """One track as reported by a player.  Position/length are microseconds."""

    title: str = UNKNOWN
    artist: str = UNKNOWN
    album: str = UNKNOWN
    status: PlaybackStatus = PlaybackStatus.STOPPED
    player: str = ""
    position: int | None = None
    length: int | None = None
    art_url: str | None = None

    def same_content(self, other: "MediaDescriptor | None") -> bool:
        """Equality ignoring ``position``, which moves on every tick."""
        if other is None:
            return False
        return replace(self, position=None) == replace(other, position=None)

    def with_changes(self, **changes) -> "MediaDescriptor":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "status": self.status.value,
            "player": self.player,
            "position": self.position,
            "length": self.length,
            "art_url": self.art_url,
        }

    def __str__(self):
        return (f"MediaDescriptor({self.title!r} by {self.artist!r}, "
                f"{self.status.value}, player={self.player!r})")


EMPTY_MEDIA = MediaDescriptor()


@dataclass(frozen=True)
class StateSnapshot:
    """Everything a consumer needs to render or control playback."""

    players: tuple[str, ...] = ()
    selected_player: str = ""
    current_media: MediaDescriptor = EMPTY_MEDIA
    is_installed: bool = False
    has_active_player: bool = False
    is_loading: bool = True
    error_message: str = ""
    volume: int = 50
    shuffle: ShuffleStatus = ShuffleStatus.UNKNOWN
    loop: LoopStatus = LoopStatus.UNKNOWN
    player_media: Mapping[str, MediaDescriptor] = field(
        default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        # Callers may hand in lists/dicts; store read-only copies.
        object.__setattr__(self, "players", tuple(self.players))
        object.__setattr__(self, "player_media",
                           MappingProxyType(dict(self.player_media)))

    @classmethod
    def initial(cls) -> "StateSnapshot":
        return cls()

    def with_changes(self, **changes) -> "StateSnapshot":
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise TypeError(f"Unknown snapshot fields: {sorted(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "players": list(self.players),
            "selected_player": self.selected_player,
            "current_media": self.current_media.to_dict(),
            "is_installed": self.is_installed,
            "has_active_player": self.has_active_player,
            "is_loading": self.is_loading,
            "error_message": self.error_message,
            "volume": self.volume,
            "shuffle": self.shuffle.value,
            "loop": self.loop.value,
            "player_media": {k: v.to_dict() for k, v in self.player_media.items()},
        }
