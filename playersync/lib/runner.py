# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
CommandRunner — the only place that spawns the playerctl binary.

Two shapes of invocation:

    result = await runner.run_once(["volume"], player="spotify")
    # -> CommandResult(returncode, stdout, stderr); ExecutionFailure if the
    #    binary cannot be spawned or does not finish within ``timeout``

    handle = await runner.start_streaming(["metadata", "--follow", ...])
    async for line in handle.stdout_lines(): ...
    code = await handle.wait()
    handle.kill()

No retry logic lives here; MetadataStream owns the restart policy.
"""

import asyncio
import logging
import shutil
from typing import NamedTuple

from .errors import ExecutionFailure

logger = logging.getLogger("playersync.runner")

DEFAULT_BINARY = "playerctl"
DEFAULT_TIMEOUT = 5.0
STREAM_LINE_LIMIT = 1024 * 1024  # art URLs can be long data: URIs


class CommandResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


class StreamHandle:
    """A live streaming child.  Lines are yielded without their newline."""

    def __init__(self, proc: asyncio.subprocess.Process, args: list[str]):
        self._proc = proc
        self.args = args

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    async def _lines(self, reader: asyncio.StreamReader | None):
        if reader is None:
            return
        while True:
            try:
                raw = await reader.readline()
            except ValueError as e:
                # Line longer than the reader limit; skip what we have.
                logger.warning("Discarding oversized line from %s: %s", self.args[0], e)
                continue
            if not raw:
                return
            yield _decode(raw).rstrip("\r\n")

    def stdout_lines(self):
        return self._lines(self._proc.stdout)

    def stderr_lines(self):
        return self._lines(self._proc.stderr)

    async def wait(self) -> int:
        return await self._proc.wait()

    def kill(self):
        if self._proc.returncode is not None:
            return
        try:
            self._proc.kill()
        except ProcessLookupError:
            pass


class CommandRunner:

    def __init__(self, binary: str = DEFAULT_BINARY, timeout: float = DEFAULT_TIMEOUT):
        self.binary = binary
        self.timeout = timeout

    def is_installed(self) -> bool:
        """Is the binary on PATH?  Independent of ``--version``."""
        return shutil.which(self.binary) is not None

    def command(self, args, player: str | None = None) -> list[str]:
        cmd = [self.binary]
        if player:
            cmd.append(f"--player={player}")
        cmd.extend(args)
        return cmd

    async def run_once(self, args, player: str | None = None) -> CommandResult:
        cmd = self.command(args, player)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE)
        except OSError as e:
            raise ExecutionFailure(cmd, e) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            logger.warning("%s timed out after %.1fs", " ".join(cmd), self.timeout)
            raise ExecutionFailure(cmd, e) from e

        result = CommandResult(proc.returncode, _decode(stdout), _decode(stderr))
        logger.debug("%s -> rc=%d", " ".join(cmd), result.returncode)
        return result

    async def start_streaming(self, args, player: str | None = None) -> StreamHandle:
        cmd = self.command(args, player)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LINE_LIMIT)
        except OSError as e:
            raise ExecutionFailure(cmd, e) from e
        logger.info("Started %s (pid %d)", " ".join(cmd), proc.pid)
        return StreamHandle(proc, cmd)
