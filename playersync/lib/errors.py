# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Error taxonomy for playersync.

Only InvalidVolume is ever raised to callers of the public engine API.
Everything else is either converted to a False/None return at the adapter
boundary (ExecutionFailure), dropped with a log line (ParseFailure), or
published on a channel and surfaced as snapshot state (NoActivePlayer,
StreamExhausted, NotInstalled).
"""


class PlayersyncError(Exception):
    """Base class for every error this package defines."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self):
        if self.cause is not None:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class NotInstalled(PlayersyncError):
    def __init__(self, binary: str = "playerctl"):
        super().__init__(f"{binary} is not installed on this system")
        self.binary = binary


class NoActivePlayer(PlayersyncError):
    def __init__(self, message: str = "No active media players found"):
        super().__init__(message)


class ExecutionFailure(PlayersyncError):
    """The external binary could not be spawned (or did not finish in time)."""

    def __init__(self, args, cause: BaseException | None = None):
        super().__init__(f"Failed to execute: {' '.join(args)}", cause)
        self.args_list = list(args)


class ParseFailure(PlayersyncError):
    def __init__(self, line: str, reason: str = "unparseable metadata line"):
        super().__init__(f"{reason}: {line!r}")
        self.line = line


class InvalidVolume(PlayersyncError, ValueError):
    def __init__(self, volume):
        super().__init__(f"Invalid volume value: {volume}. Must be between 0 and 100")
        self.volume = volume


class StreamExhausted(PlayersyncError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Metadata stream failed after {attempts} restart attempts")
        self.attempts = attempts
