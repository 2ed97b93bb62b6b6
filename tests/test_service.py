from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from aiohttp import test_utils

from helpers import media, wait_for
from playersync.lib.models import LoopStatus, ShuffleStatus
from playersync.service import PlayersyncService


@pytest_asyncio.fixture
async def service(make_engine):
    engine = make_engine()
    await engine.initialize()
    return PlayersyncService(engine)


@pytest_asyncio.fixture
async def client(service):
    async with test_utils.TestClient(test_utils.TestServer(service.build_app())) as client:
        yield client


@pytest.mark.asyncio
async def test_state_endpoint_returns_snapshot(client) -> None:
    resp = await client.get("/player/state")

    assert resp.status == 200
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    data = await resp.json()
    assert data["selected_player"] == "spotify"
    assert data["players"] == ["spotify", "vlc"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("path", "verb"),
    [("/player/play", "play"), ("/player/pause", "pause"), ("/player/stop", "stop"),
     ("/player/toggle", "play-pause"), ("/player/next", "next"), ("/player/prev", "previous")],
)
async def test_command_endpoints(client, world, path: str, verb: str) -> None:
    resp = await client.post(path)

    assert await resp.json() == {"status": "ok"}
    assert world.calls[-1] == (verb, "spotify")


@pytest.mark.asyncio
async def test_failed_command_reports_error(client, world) -> None:
    world.commands_ok = False

    resp = await client.post("/player/stop")

    assert await resp.json() == {"status": "error", "message": "Failed to stop"}


@pytest.mark.asyncio
async def test_volume_endpoint(client, service) -> None:
    resp = await client.post("/player/volume", json={"volume": 65})
    assert (await resp.json())["status"] == "ok"
    assert service.engine.state.volume == 65

    resp = await client.post("/player/volume", json={"volume": 150})
    assert resp.status == 400
    assert "Must be between 0 and 100" in (await resp.json())["message"]

    resp = await client.post("/player/volume", json={})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_volume_endpoint_accepts_integral_floats(client, service, world) -> None:
    resp = await client.post("/player/volume", json={"volume": 50.0})
    assert (await resp.json())["status"] == "ok"
    assert service.engine.state.volume == 50
    assert world.calls[-1] == ("volume", 50, "spotify")

    resp = await client.post("/player/volume", json={"volume": 50.5})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_seek_endpoint(client, world) -> None:
    await client.post("/player/seek", json={"position": 2_000_000})
    await client.post("/player/seek", json={"offset": -1_000_000})
    assert world.calls[-2:] == [("position", 2_000_000, "spotify"), ("seek", -1_000_000, "spotify")]

    resp = await client.post("/player/seek", json={"position": "soon"})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_shuffle_and_loop_endpoints(client, service) -> None:
    await client.post("/player/shuffle")
    assert service.engine.state.shuffle is ShuffleStatus.ON

    await client.post("/player/shuffle", json={"shuffle": "off"})
    assert service.engine.state.shuffle is ShuffleStatus.OFF

    await client.post("/player/loop", json={"loop": "Playlist"})
    assert service.engine.state.loop is LoopStatus.PLAYLIST

    resp = await client.post("/player/loop", json={"loop": "sometimes"})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_switch_endpoint(client, service) -> None:
    resp = await client.post("/player/switch", json={"player": "vlc"})
    assert (await resp.json())["status"] == "ok"
    assert service.engine.state.selected_player == "vlc"

    resp = await client.post("/player/switch", json={"player": "mpv"})
    assert (await resp.json())["status"] == "error"


@pytest.mark.asyncio
async def test_websocket_gets_snapshot_then_updates(client, service, fake_stream) -> None:
    subscription = service.engine.subscribe()
    broadcaster = asyncio.create_task(service._broadcast_loop(subscription))
    try:
        ws = await client.ws_connect("/ws")
        hello = await ws.receive_json(timeout=1)
        assert hello["type"] == "state_update"
        assert hello["reason"] == "client_connect"
        assert hello["data"]["selected_player"] == "spotify"

        await wait_for(lambda: len(service._ws_clients) == 1)
        fake_stream.push(media("Song A"))
        update = await ws.receive_json(timeout=1)
        assert update["data"]["current_media"]["title"] == "Song A"
        await ws.close()
    finally:
        subscription.cancel()
        await broadcaster


@pytest.mark.asyncio
async def test_start_and_shutdown(make_engine, fake_stream, monkeypatch) -> None:
    monkeypatch.delenv("NOTIFY_SOCKET", raising=False)
    service = PlayersyncService(make_engine(), port=0, host="127.0.0.1")

    await service.start()
    assert service.running
    assert service.engine.state.selected_player == "spotify"
    assert fake_stream.active

    await service.shutdown()
    assert not service.running
    assert not fake_stream.active
