# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
DiscoveryController — bounded network scans feeding the device registry.

start() checks that the renderer's network layer is reachable (raising
DiscoveryError once if it is not), then scans in a background task for
``discovery_duration`` seconds.  Each device seen for the first time is
registered and published as ``device_found``; devices seen again only have
their status refreshed.  stop() cancels the scan and waits for it, so
nothing is registered after it returns.
"""

import asyncio
import logging

from .errors import DiscoveryError, RendererError, UnsupportedError
from .events import (DEVICE_FOUND, DISCOVERY_ERROR, DISCOVERY_STARTED,
                     DISCOVERY_STOPPED, EventBus)
from .models import Device, EngineSettings
from .registry import DeviceRegistry
from .renderers.base import CAP_DISCOVERY, RendererService

log = logging.getLogger(__name__)


class DiscoveryController:
    def __init__(self, registry: DeviceRegistry, renderer: RendererService,
                 bus: EventBus, settings: EngineSettings | None = None):
        self._registry = registry
        self._renderer = renderer
        self._bus = bus
        self._settings = settings or EngineSettings()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        if self.running:
            log.info("Already scanning")
            return
        if not self._renderer.supports(CAP_DISCOVERY):
            raise UnsupportedError(
                f"Renderer {self._renderer.name or 'service'} does not support discovery")
        try:
            await asyncio.wait_for(self._renderer.ready(), self._settings.command_timeout)
        except asyncio.TimeoutError:
            raise DiscoveryError("Network layer did not respond") from None
        except RendererError as e:
            raise DiscoveryError(f"Network layer unavailable: {e}") from e
        if self.running:
            # Another start() won the race while we were checking
            return

        self._task = asyncio.create_task(self._scan(self._settings.discovery_duration))
        log.info("Started device discovery (%.0fs)", self._settings.discovery_duration)
        self._bus.emit(DISCOVERY_STARTED)

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            log.info("Stopped device discovery")
            self._bus.emit(DISCOVERY_STOPPED)

    async def _scan(self, duration: float):
        found = 0
        try:
            async for desc in self._renderer.scan(duration):
                try:
                    device = Device.from_description(desc)
                except (AttributeError, TypeError, ValueError) as e:
                    log.debug("Ignoring malformed device description %r: %s", desc, e)
                    continue
                if self._registry.add(device):
                    found += 1
                    log.info("Device found: %s", device.name)
                    self._bus.emit(DEVICE_FOUND, device)
        except RendererError as e:
            log.warning("Discovery failed: %s", e)
            self._bus.emit(DISCOVERY_ERROR, str(e))
        log.info("Discovery finished (%d new devices)", found)
        if self._task is asyncio.current_task():
            self._task = None
        self._bus.emit(DISCOVERY_STOPPED)
