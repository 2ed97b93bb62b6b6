"""Project-wide pytest fixtures."""

from __future__ import annotations

import logging

import pytest
import pytest_asyncio

from helpers import FakeArtServer, FakeMetadataStream, FakeWorld, fake_backend
from playersync.engine import SyncEngine
from playersync.lib import config


@pytest.fixture
def world() -> FakeWorld:
    return FakeWorld(players=["spotify", "vlc"])


@pytest.fixture
def fake_stream() -> FakeMetadataStream:
    return FakeMetadataStream()


@pytest.fixture
def fake_art() -> FakeArtServer:
    return FakeArtServer()


@pytest_asyncio.fixture
async def make_engine(world, fake_stream, fake_art):
    """Factory for engines over the fake backend.  Timers default to "never"."""
    engines: list[SyncEngine] = []

    def factory(**overrides) -> SyncEngine:
        options = dict(
            art_server=fake_art,
            roster_interval=60,
            volume_interval=60,
            metadata_interval=60,
            settle_delay=0,
            logger=logging.getLogger("playersync.test.engine"),
        )
        options.update(overrides)
        engine = SyncEngine(fake_backend(world), fake_stream, **options)
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        await engine.dispose()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point the loader at a temp config.json and reset its cache around the test."""
    path = tmp_path / "config.json"
    monkeypatch.setenv("PLAYERSYNC_CONFIG", str(path))
    config._config = None
    yield path
    config._config = None
