from __future__ import annotations

import asyncio
import socket

import pytest

from playersync.lib.watchdog import sd_notify, watchdog_loop


def test_sd_notify_without_systemd_is_a_no_op(monkeypatch) -> None:
    monkeypatch.delenv("NOTIFY_SOCKET", raising=False)
    assert sd_notify("READY=1") is False


@pytest.mark.asyncio
async def test_watchdog_sends_ready_then_status(tmp_path, monkeypatch) -> None:
    path = str(tmp_path / "notify.sock")
    receiver = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    receiver.bind(path)
    receiver.setblocking(False)
    monkeypatch.setenv("NOTIFY_SOCKET", path)

    task = asyncio.create_task(watchdog_loop(interval=60, status=lambda: "Playing on vlc"))
    try:
        await asyncio.sleep(0.05)
        messages = [receiver.recv(1024).decode(), receiver.recv(1024).decode()]
    finally:
        task.cancel()
        receiver.close()

    assert messages == ["READY=1", "WATCHDOG=1\nSTATUS=Playing on vlc"]
