# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
ConnectionManager — owns the single "active device" slot.

    connect(device_id)    — bind a registered device
    connect_manual(host)  — probe a bare host, register it, bind it
    disconnect()          — the one place "no device" is re-entered

Only one device is active at a time.  Switching devices stops the old one
before the new one receives any command, so two devices never play from
the same queue.  Every activation bumps ``epoch``; transport commands
remember the epoch they were sent under and are discarded if it changed
before they resolved.
"""

import asyncio
import logging

from .errors import (ConnectionFailedError, DeviceNotFoundError, NoActiveDeviceError,
                     RendererError, UnsupportedError)
from .events import ACTIVE_DEVICE_CHANGED, EventBus
from .models import Device, EngineSettings, normalize_host
from .registry import DeviceRegistry
from .renderers.base import CAP_MANUAL, STOP, RendererService
from .status_sync import StatusSynchronizer

log = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self, registry: DeviceRegistry, renderer: RendererService,
                 synchronizer: StatusSynchronizer, bus: EventBus,
                 settings: EngineSettings | None = None):
        self._registry = registry
        self._renderer = renderer
        self._sync = synchronizer
        self._bus = bus
        self._settings = settings or EngineSettings()
        self._active: Device | None = None
        self._epoch = 0
        self._pending: set[asyncio.Future] = set()
        self._lock = asyncio.Lock()

    @property
    def active_device(self) -> Device | None:
        return self._active

    @property
    def epoch(self) -> int:
        return self._epoch

    def is_casting(self) -> bool:
        return self._active is not None

    def require_active(self) -> tuple[Device, int]:
        """Return (device, epoch) or raise NoActiveDeviceError."""
        if self._active is None:
            raise NoActiveDeviceError()
        return self._active, self._epoch

    def track(self, future: asyncio.Future):
        """Register a command in flight so disconnect() can cancel it."""
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    # ── Connect ──

    async def connect(self, device_id: str) -> Device:
        async with self._lock:
            device = self._registry.get(device_id)
            if device is None:
                raise DeviceNotFoundError(f"Device not found: {device_id}")
            if self._active is not None and self._active.id == device.id:
                return device
            await self._probe(device.host)
            await self._activate(device)
            return device

    async def connect_manual(self, host: str) -> Device:
        """Connect to a host that discovery did not find.

        Succeeds with the registered device or raises; a failed attempt
        leaves both the registry and the active slot untouched.
        """
        if not self._renderer.supports(CAP_MANUAL):
            raise UnsupportedError(
                f"Renderer {self._renderer.name or 'service'} does not support manual hosts")
        canonical = normalize_host(host)
        async with self._lock:
            desc = await self._probe(canonical)
            device = Device.manual_entry(canonical, desc)
            existing = self._registry.get(device.id)
            if existing is not None:
                device = existing
            if self._active is not None and self._active.id == device.id:
                return device
            self._registry.add(device)
            await self._activate(device)
            return device

    async def _probe(self, host: str) -> dict:
        try:
            return await asyncio.wait_for(
                self._renderer.probe(host), self._settings.connect_timeout)
        except asyncio.TimeoutError:
            raise ConnectionFailedError(
                f"Device at {host} did not answer within "
                f"{self._settings.connect_timeout:.0f}s") from None
        except RendererError as e:
            raise ConnectionFailedError(f"Device at {host} unreachable: {e}") from e

    async def _activate(self, device: Device):
        if self._active is not None:
            await self._release()
        self._epoch += 1
        self._active = device
        self._sync.attach(device)
        log.info("Connected to %s (%s)", device.name, device.host)
        self._bus.emit(ACTIVE_DEVICE_CHANGED, device)

    # ── Disconnect ──

    async def disconnect(self):
        async with self._lock:
            had_device = self._active is not None
            await self._release()
            if had_device:
                self._bus.emit(ACTIVE_DEVICE_CHANGED, None)

    async def _release(self):
        """Stop and forget the active device.  Never raises for the stop."""
        device = self._active
        self._epoch += 1
        for future in list(self._pending):
            future.cancel()
        self._active = None
        await self._sync.detach()
        if device is None:
            return
        try:
            await asyncio.wait_for(
                self._renderer.send(device, STOP), self._settings.command_timeout)
        except asyncio.TimeoutError:
            log.warning("Stop on %s timed out during disconnect", device.name)
        except RendererError as e:
            log.warning("Stop on %s failed during disconnect: %s", device.name, e)
        log.info("Disconnected from %s", device.name)
