"""
playersync — keep one coherent view of whatever MPRIS player is active.

Wraps the ``playerctl`` command-line tool: a supervised ``--follow`` stream
plus periodic polling feed a single SyncEngine, which publishes immutable
StateSnapshots to any number of subscribers.

Modules:
  engine.py   — SyncEngine, create_engine()
  stream.py   — MetadataStream (follow process with bounded restarts)
  service.py  — HTTP + WebSocket daemon (playersync-service)
  lib/        — runner, adapters, models, art server, config, watchdog
"""

__version__ = "0.1.0"
