"""
Configuration loader for playersync.

Loads a single JSON config file.  Search order:
  1. $PLAYERSYNC_CONFIG              (explicit override)
  2. /etc/playersync/config.json     (system install)
  3. config.json                     (CWD — handy for local dev)
  4. ../../config/default.json       (repo fallback)

Only the entry points (create_engine, the service) read config; library
classes take plain constructor arguments.

Usage:
    from playersync.lib.config import cfg

    binary   = cfg("playerctl", "binary", default="playerctl")
    interval = cfg("sync", "roster_interval", default=5)
    sync     = cfg("sync")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/playersync/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]

_POSITIVE_NUMBERS = [
    ("playerctl", "timeout"),
    ("sync", "roster_interval"),
    ("sync", "volume_interval"),
    ("sync", "metadata_interval"),
    ("stream", "restart_delay"),
]

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _search_paths() -> list[str]:
    override = os.environ.get("PLAYERSYNC_CONFIG")
    return [override, *_SEARCH_PATHS] if override else list(_SEARCH_PATHS)


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    for section, key in _POSITIVE_NUMBERS:
        val = (config.get(section) or {}).get(key)
        if val is not None and (not isinstance(val, (int, float)) or val <= 0):
            logger.warning("Config %s: %s.%s must be a positive number, got %r",
                           path, section, key, val)
    restarts = (config.get("stream") or {}).get("max_restarts")
    if restarts is not None and (not isinstance(restarts, int) or restarts < 0):
        logger.warning("Config %s: stream.max_restarts must be >= 0, got %r", path, restarts)
    for section in ("art_server", "service"):
        port = (config.get(section) or {}).get("port")
        if port is not None and (not isinstance(port, int) or not 0 <= port <= 65535):
            logger.warning("Config %s: %s.port out of range: %r", path, section, port)
    level = (config.get("logging") or {}).get("level")
    if level is not None and str(level).upper() not in _LOG_LEVELS:
        logger.warning("Config %s: unknown logging.level '%s'", path, level)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("sync")                             → config["sync"]
    cfg("playerctl", "binary")              → config["playerctl"]["binary"]
    cfg("stream", "max_restarts", default=5) → config["stream"]["max_restarts"] or 5
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
