# playersync
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Local artwork server.

Players such as Firefox or VLC report cover art as ``file://`` URLs that a
remote UI cannot open.  Each such file is registered here and exposed as
``http://<host>:<port>/art/<key>.<ext>``.  The server starts lazily on the
first registration and is stopped by the engine on dispose.

Routes:
  GET /                 — health check
  GET /art/<key>.<ext>  — registered file (404 if unknown or deleted)
"""

import asyncio
import hashlib
import logging
import os

from aiohttp import web

from .metadata_format import file_url_to_path, is_local_art

log = logging.getLogger("playersync.art")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
_WILDCARD_HOSTS = ("0.0.0.0", "::", "")


class ArtServer:

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 public_host: str | None = None):
        self.host = host
        self.port = port
        self.public_host = public_host or (
            "127.0.0.1" if host in _WILDCARD_HOSTS else host)
        self._runner: web.AppRunner | None = None
        self._base_url: str | None = None
        self._files: dict[str, str] = {}
        self._start_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    @property
    def base_url(self) -> str | None:
        return self._base_url

    async def start(self) -> str | None:
        """Start listening.  Returns the base URL, or None if binding failed."""
        async with self._start_lock:
            if self._runner is not None:
                return self._base_url

            app = web.Application()
            app.router.add_get("/", self._handle_health)
            app.router.add_get("/art/{name}", self._handle_art)

            runner = web.AppRunner(app)
            await runner.setup()
            site = web.TCPSite(runner, self.host, self.port)
            try:
                await site.start()
            except OSError as e:
                log.error("Failed to start art server on %s:%d: %s",
                          self.host, self.port, e)
                await runner.cleanup()
                return None

            port = self.port
            if runner.addresses:
                port = runner.addresses[0][1]
            self._runner = runner
            self._base_url = f"http://{self.public_host}:{port}"
            log.info("Art server listening on %s", self._base_url)
            return self._base_url

    async def stop(self):
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        self._base_url = None
        self._files.clear()
        log.info("Art server stopped")

    async def register_file(self, path: str) -> str | None:
        """Expose *path* and return its URL, or None on failure."""
        if not os.path.isfile(path):
            log.warning("Art file does not exist: %s", path)
            return None
        base = self._base_url if self._runner else await self.start()
        if base is None:
            return None

        key = hashlib.sha1(path.encode("utf-8")).hexdigest()[:16]
        name = key + os.path.splitext(path)[1].lower()
        self._files[name] = path
        url = f"{base}/art/{name}"
        log.debug("Registered %s -> %s", path, url)
        return url

    async def resolve(self, art_url: str | None) -> str | None:
        """Swap a ``file://`` locator for a served URL; other schemes pass through."""
        if not is_local_art(art_url):
            return art_url
        try:
            served = await self.register_file(file_url_to_path(art_url))
        except Exception as e:
            log.warning("Could not serve %s: %s", art_url, e)
            served = None
        return served or art_url

    # ── HTTP handlers ──

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="Album art server is running")

    async def _handle_art(self, request: web.Request) -> web.StreamResponse:
        path = self._files.get(request.match_info["name"])
        if path is None or not os.path.isfile(path):
            return web.Response(status=404, text="File not found")
        return web.FileResponse(path, headers={
            "Access-Control-Allow-Origin": "*",
            "Content-Disposition": "inline",
            "Cache-Control": "public, max-age=3600",
        })
