# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Device registry — every renderer known to this session, keyed by id."""

import logging

from .models import Device, DeviceStatus

log = logging.getLogger(__name__)


class DeviceRegistry:
    """Known renderers (discovered + manual), deduplicated by id."""

    def __init__(self):
        self._devices: dict[str, Device] = {}

    def add(self, device: Device) -> bool:
        """Insert *device* if its id is unknown.  Returns True if it was new.

        A known id keeps its original entry; only the status is refreshed.
        """
        existing = self._devices.get(device.id)
        if existing is not None:
            if existing.status != device.status:
                existing.status = device.status
                log.debug("Device %s status -> %s", device.id, device.status.value)
            return False
        self._devices[device.id] = device
        log.info("Device registered: %s (%s, %s)", device.name, device.host, device.id)
        return True

    def get(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    def find_by_host(self, host: str) -> Device | None:
        for device in self._devices.values():
            if device.host == host:
                return device
        return None

    def update_status(self, device_id: str, status: DeviceStatus) -> bool:
        device = self._devices.get(device_id)
        if device is None or device.status == status:
            return False
        device.status = status
        return True

    def all(self) -> list[Device]:
        """Devices in registration order."""
        return list(self._devices.values())

    def clear(self, keep: str | None = None):
        """Forget every device except *keep* (the active one, if any)."""
        kept = self._devices.get(keep) if keep else None
        self._devices.clear()
        if kept is not None:
            self._devices[kept.id] = kept

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._devices

    def __len__(self):
        return len(self._devices)
