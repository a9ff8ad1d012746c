"""
Shared configuration loader for the VaultCast engine.

Loads a single JSON config file.  Search order:
  1. $VAULTCAST_CONFIG               (explicit override)
  2. /etc/vaultcast/config.json      (system install)
  3. config.json                     (CWD — handy for local dev)
  4. ../../config/default.json       (repo fallback)

Usage:
    from vaultcast.lib.config import cfg

    bridge_url   = cfg("renderer", "bridge_url", default="http://localhost:8791")
    poll         = cfg("sync", "poll_interval", default=1.0)
    server       = cfg("server")  # returns the whole dict
"""

import json
import logging
import os

log = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/vaultcast/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]

# Numeric settings that must be strictly positive for the engine to make sense
_POSITIVE = (
    ("discovery", "duration"),
    ("timeouts", "command"),
    ("timeouts", "connect"),
    ("sync", "poll_interval"),
    ("sync", "seek_guard_timeout"),
)


def _search_paths() -> list[str]:
    override = os.environ.get("VAULTCAST_CONFIG")
    if override:
        return [override] + _SEARCH_PATHS
    return list(_SEARCH_PATHS)


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    renderer = config.get("renderer") or {}
    if not renderer.get("bridge_url"):
        log.warning("Config %s: missing renderer.bridge_url — using default bridge", path)
    for section, key in _POSITIVE:
        value = (config.get(section) or {}).get(key)
        if value is None:
            continue
        if not isinstance(value, (int, float)) or value <= 0:
            log.warning("Config %s: %s.%s must be a positive number (got %r)",
                        path, section, key, value)
    tolerance = (config.get("sync") or {}).get("seek_tolerance")
    if tolerance is not None and (not isinstance(tolerance, (int, float)) or tolerance < 0):
        log.warning("Config %s: sync.seek_tolerance must be >= 0 (got %r)", path, tolerance)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                log.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            log.error("Invalid JSON in %s: %s", path, e)
            continue

    log.warning("No config.json found — using empty config")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("server")                        → config["server"]
    cfg("renderer", "bridge_url")        → config["renderer"]["bridge_url"]
    cfg("sync", "poll_interval", default=1.0)  → value or 1.0
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
