# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
playersync-service — HTTP + WebSocket front end for a SyncEngine.

Every published StateSnapshot is pushed to WebSocket clients as

    {"type": "state_update", "reason": "...", "data": {...snapshot...}}

and a new client gets the current snapshot straight away.

Endpoints:
    GET  /ws                   push-only state feed
    GET  /player/state         current snapshot
    POST /player/play|pause|stop|toggle|next|prev
    POST /player/volume        {"volume": 0..100}          400 if out of range
    POST /player/seek          {"position": µs} | {"offset": µs}
    POST /player/shuffle       {"shuffle": "On"|"Off"}     toggles if omitted
    POST /player/loop          {"loop": "None"|"Track"|"Playlist"}  cycles if omitted
    POST /player/switch        {"player": "<id>"}
    POST /player/retry         re-run initialization

Commands answer {"status": "ok"} or {"status": "error", "message": ...}.
"""

import asyncio
import json
import logging
import signal

from aiohttp import web

from .engine import SyncEngine, create_engine
from .lib.channel import Subscription
from .lib.config import cfg
from .lib.errors import InvalidVolume
from .lib.models import LoopStatus, ShuffleStatus, StateSnapshot
from .lib.watchdog import sd_notify, watchdog_loop

log = logging.getLogger("playersync.service")

DEFAULT_PORT = 8780


class PlayersyncService:

    def __init__(self, engine: SyncEngine, port: int = DEFAULT_PORT, host: str = "0.0.0.0"):
        self.engine = engine
        self.port = port
        self.host = host
        self.running = False
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._runner: web.AppRunner | None = None
        self._subscription: Subscription | None = None
        self._broadcast_task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None

    # ── WebSocket broadcasting ──

    async def broadcast_state(self, snapshot: StateSnapshot, reason: str = "update"):
        """Push a state_update to all connected WebSocket clients."""
        if not self._ws_clients:
            return

        message = json.dumps({
            "type": "state_update",
            "reason": reason,
            "data": snapshot.to_dict(),
        })

        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except Exception:
                disconnected.add(ws)

        self._ws_clients -= disconnected
        log.debug("Broadcast state to %d clients", len(self._ws_clients))

    async def _broadcast_loop(self, subscription: Subscription):
        async for snapshot in subscription:
            await self.broadcast_state(snapshot)

    # ── HTTP + WebSocket server ──

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_get("/player/state", self._handle_state)

        for name, action in (
            ("play", self.engine.play),
            ("pause", self.engine.pause),
            ("stop", self.engine.stop),
            ("toggle", self.engine.play_pause),
            ("next", self.engine.next),
            ("prev", self.engine.previous),
            ("retry", self.engine.retry),
        ):
            app.router.add_post(f"/player/{name}", self._command_handler(action))

        app.router.add_post("/player/volume", self._handle_volume)
        app.router.add_post("/player/seek", self._handle_seek)
        app.router.add_post("/player/shuffle", self._handle_shuffle)
        app.router.add_post("/player/loop", self._handle_loop)
        app.router.add_post("/player/switch", self._handle_switch)
        return app

    async def start(self):
        """Initialize the engine, then start listening."""
        self.running = True
        self._subscription = self.engine.subscribe()
        self._broadcast_task = asyncio.create_task(self._broadcast_loop(self._subscription))

        if not await self.engine.initialize():
            log.warning("Engine not ready: %s", self.engine.state.error_message)

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("playersync: HTTP + WebSocket on port %d", self.port)

        self._watchdog_task = asyncio.create_task(watchdog_loop(status=self._status_line))

    def _status_line(self) -> str:
        state = self.engine.state
        if state.error_message:
            return state.error_message.splitlines()[0]
        if not state.selected_player:
            return "No active player"
        media = state.current_media
        return f"{state.selected_player}: {media.status.value} {media.artist} - {media.title}"

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Clean up resources."""
        self.running = False
        sd_notify("STOPPING=1")

        if self._watchdog_task:
            self._watchdog_task.cancel()
            try:
                await self._watchdog_task
            except (asyncio.CancelledError, Exception):
                pass
            self._watchdog_task = None

        await self.engine.dispose()

        if self._broadcast_task:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except (asyncio.CancelledError, Exception):
                pass
            self._broadcast_task = None

        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ── WebSocket handler ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))

        try:
            await ws.send_json({
                "type": "state_update",
                "reason": "client_connect",
                "data": self.engine.state.to_dict(),
            })
            async for msg in ws:
                pass  # push-only
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))

        return ws

    # ── HTTP route handlers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    def _reply(self, ok: bool, status: int = 200) -> web.Response:
        body = {"status": "ok" if ok else "error"}
        if not ok:
            body["message"] = self.engine.state.error_message
        return web.json_response(body, status=status, headers=self._cors_headers())

    def _error(self, message: str, status: int = 400) -> web.Response:
        return web.json_response({"status": "error", "message": message},
                                 status=status, headers=self._cors_headers())

    async def _body(self, request: web.Request) -> dict:
        try:
            data = await request.json()
        except Exception:
            return {}
        return data if isinstance(data, dict) else {}

    def _command_handler(self, action):
        async def handler(request: web.Request) -> web.Response:
            return self._reply(await action())
        return handler

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response(self.engine.state.to_dict(), headers=self._cors_headers())

    async def _handle_volume(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        if "volume" not in data:
            return self._error("Missing 'volume'")
        volume = data["volume"]
        if isinstance(volume, float) and volume.is_integer():
            volume = int(volume)  # JSON clients may send 50.0
        try:
            ok = await self.engine.set_volume(volume)
        except InvalidVolume as e:
            return self._error(e.message)
        return self._reply(ok)

    async def _handle_seek(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        try:
            if "position" in data:
                ok = await self.engine.seek_to(int(data["position"]))
            elif "offset" in data:
                ok = await self.engine.seek(int(data["offset"]))
            else:
                return self._error("Expected 'position' or 'offset'")
        except (TypeError, ValueError):
            return self._error("Seek values must be integers (microseconds)")
        return self._reply(ok)

    async def _handle_shuffle(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        if "shuffle" not in data:
            return self._reply(await self.engine.toggle_shuffle())
        status = ShuffleStatus.parse(str(data["shuffle"]))
        if status is ShuffleStatus.UNKNOWN:
            return self._error(f"Invalid shuffle value: {data['shuffle']}")
        return self._reply(await self.engine.set_shuffle(status))

    async def _handle_loop(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        if "loop" not in data:
            return self._reply(await self.engine.cycle_loop())
        status = LoopStatus.parse(str(data["loop"]))
        if status is LoopStatus.UNKNOWN:
            return self._error(f"Invalid loop value: {data['loop']}")
        return self._reply(await self.engine.set_loop(status))

    async def _handle_switch(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        player = data.get("player")
        if not player:
            return self._error("Missing 'player'")
        return self._reply(await self.engine.switch_player(str(player)))


async def _main():
    service = PlayersyncService(
        create_engine(),
        port=int(cfg("service", "port", default=DEFAULT_PORT)),
        host=cfg("service", "host", default="0.0.0.0"))
    await service.run()


def main():
    """Console entry point."""
    logging.basicConfig(
        level=str(cfg("logging", "level", default="INFO")).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(_main())


if __name__ == "__main__":
    main()
