"""Systemd notify support for the playersync service.

Sends READY=1 once, then WATCHDOG=1 with a one-line STATUS= summary at
regular intervals.  No-ops when NOTIFY_SOCKET is unset (dev mode).

Usage:
    from playersync.lib.watchdog import watchdog_loop
    asyncio.create_task(watchdog_loop(status=lambda: "Playing on spotify"))
"""

import asyncio
import logging
import os
import socket
from collections.abc import Callable

logger = logging.getLogger(__name__)


def sd_notify(msg: str) -> bool:
    """Send a notification message to the systemd notify socket.

    Returns False when not running under systemd.
    """
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
    finally:
        sock.close()
    return True


async def watchdog_loop(interval: float = 20, status: Callable[[], str] | None = None):
    """Send WATCHDOG=1 every *interval* seconds.  Call as asyncio.create_task().

    Sends READY=1 first so systemd knows startup finished (Type=notify).
    If *status* is given its result is attached as STATUS= on every beat.
    """
    sd_notify("READY=1")
    logger.info("Watchdog started (interval=%ss)", interval)
    while True:
        msg = "WATCHDOG=1"
        if status is not None:
            msg += f"\nSTATUS={status()}"
        sd_notify(msg)
        await asyncio.sleep(interval)
