#!/usr/bin/env python3
# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
VaultCast service (python -m vaultcast)

Runs the cast engine against the configured renderer bridge and serves the
HTTP + WebSocket front (default port 8790):
  POST /cast/discovery/start   — scan for renderers
  POST /cast/connect           — bind a discovered device
  POST /cast/play | pause | next | previous | seek | volume
  GET  /cast/status            — current CastStatus
  GET  /cast/queue             — current queue snapshot
  WS   /ws                     — pushed engine events
"""

import logging

from aiohttp import web

from .engine import CastEngine
from .lib.config import cfg
from .renderers.http import HttpRendererBridge
from .server import create_app

logging.basicConfig(
    level=getattr(logging, str(cfg("logging", "level", default="INFO")).upper(), logging.INFO),
    format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("vaultcast")

HOST = cfg("server", "host", default="0.0.0.0")
PORT = int(cfg("server", "port", default=8790))


def main():
    engine = CastEngine(HttpRendererBridge())
    app = create_app(engine)
    log.info("Starting VaultCast on %s:%d (bridge %s)", HOST, PORT, engine.renderer.base_url)
    web.run_app(app, host=HOST, port=PORT, print=lambda msg: log.info(msg))


if __name__ == "__main__":
    main()
