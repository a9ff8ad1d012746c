# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
HttpRendererBridge — RendererService backed by a renderer bridge process.

The bridge owns the SSDP/DLNA/Chromecast plumbing and exposes a small
JSON-over-HTTP API (default port 8791):

  GET  /health                              — is the network layer up?
  GET  /renderers?timeout=T&etag=E          — long-poll for the device list
  GET  /probe?host=H                        — describe one host
  POST /renderers/{id}/{command}            — transport command
                                              body: {"host": ..., **args}
  GET  /renderers/{id}/status?host=H        — one status frame

Errors come back as {"status": "error", "code": N, "message": "..."}.
"""

import asyncio
import logging
import time
from urllib.parse import quote

import aiohttp

from ..errors import RendererError
from ..lib.config import cfg
from ..models import Device
from .base import RendererService

log = logging.getLogger(__name__)

DEFAULT_BRIDGE_URL = "http://localhost:8791"
LONG_POLL_MAX = 5.0   # seconds; bridge holds /renderers until the list changes


def _error_code(raw) -> int | None:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class HttpRendererBridge(RendererService):
    name = "http-bridge"

    def __init__(self, base_url: str | None = None,
                 session: aiohttp.ClientSession | None = None):
        self.base_url = (base_url or cfg("renderer", "bridge_url",
                                         default=DEFAULT_BRIDGE_URL)).rstrip("/")
        self._session = session
        self._owns_session = session is None

    # ── HTTP helpers ──

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "VaultCast-Bridge/1.0"})
            self._owns_session = True
        return self._session

    async def _request(self, method: str, path: str, *, params=None, json=None,
                       timeout: float | None = None) -> dict:
        """Issue one bridge request and return its JSON body.

        Transport failures, HTTP errors and bridge-level errors all become
        RendererError so callers deal with a single failure type.
        """
        url = f"{self.base_url}{path}"
        client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None
        try:
            async with self._http().request(
                method, url, params=params, json=json, timeout=client_timeout,
            ) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
                if not isinstance(data, dict):
                    data = {}
                if resp.status >= 400 or data.get("status") == "error":
                    message = data.get("message") or f"HTTP {resp.status}"
                    raise RendererError(message, code=_error_code(data.get("code")))
                return data
        except asyncio.TimeoutError as e:
            raise RendererError(f"Bridge request {path} timed out") from e
        except aiohttp.ClientError as e:
            raise RendererError(f"Bridge request {path} failed: {e}") from e

    # ── RendererService ──

    async def ready(self) -> None:
        await self._request("GET", "/health")

    async def scan(self, duration: float):
        """Long-poll the bridge device list until *duration* has elapsed."""
        deadline = time.monotonic() + duration
        etag = ""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            wait = min(remaining, LONG_POLL_MAX)
            params = {"timeout": f"{wait:.1f}"}
            if etag:
                params["etag"] = etag
            try:
                data = await self._request("GET", "/renderers", params=params,
                                           timeout=wait + 5)
            except RendererError as e:
                if isinstance(e.__cause__, asyncio.TimeoutError):
                    continue
                raise
            etag = str(data.get("etag", etag))
            for desc in data.get("devices", []):
                if isinstance(desc, dict) and desc.get("host"):
                    yield desc

    async def probe(self, host: str) -> dict:
        data = await self._request("GET", "/probe", params={"host": host})
        return data.get("device") or {"host": host}

    async def send(self, device: Device, command: str, **args) -> None:
        body = {"host": device.host}
        body.update(args)
        await self._request(
            "POST", f"/renderers/{quote(device.id, safe='')}/{command}", json=body)
        log.debug("Bridge ack: %s -> %s", command, device.name)

    async def fetch_status(self, device: Device) -> dict:
        data = await self._request(
            "GET", f"/renderers/{quote(device.id, safe='')}/status",
            params={"host": device.host})
        return data.get("status_frame") or data

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
