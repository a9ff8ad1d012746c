# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Value types shared by the cast engine components.

Device        — a renderer known to the registry (discovered or manual)
QueueItem     — one immutable entry in the playback queue
QueueState    — read-only snapshot of the queue
CastStatus    — last known truth reported by the active device

All of them serialize to plain dicts (snake_case) for the HTTP/WebSocket
front.  Renderer payloads may use either snake_case or camelCase keys
(currentTime, mediaPath, ...) as sent by node-based DLNA bridges.
"""

import ipaddress
import re
import uuid
from dataclasses import dataclass, replace
from enum import Enum

from .errors import InvalidHostError


class DeviceKind(str, Enum):
    DLNA = "dlna"
    CHROMECAST = "chromecast"


class DeviceStatus(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    STOPPED = "stopped"


class RepeatMode(str, Enum):
    NONE = "none"
    ONE = "one"
    ALL = "all"


_HOSTNAME_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def normalize_host(host: str) -> str:
    """Validate a bare host address and return its canonical form.

    Accepts IPv4/IPv6 literals and DNS hostnames.  Raises InvalidHostError
    for anything else (empty strings, URLs, host:port pairs, ...).
    """
    if not isinstance(host, str):
        raise InvalidHostError(f"Invalid host: {host!r}")
    candidate = host.strip().lower()
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    if not candidate:
        raise InvalidHostError("Host address is empty")
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        pass
    # Dotted-quad lookalikes that failed to parse are typos, not hostnames
    if re.fullmatch(r"[0-9.]+", candidate):
        raise InvalidHostError(f"Invalid IP address: {host!r}")
    labels = candidate.rstrip(".").split(".")
    if len(candidate) > 253 or not all(_HOSTNAME_LABEL.match(l) for l in labels):
        raise InvalidHostError(f"Invalid host: {host!r}")
    return candidate.rstrip(".")


def manual_device_id(host: str) -> str:
    """Stable id for a manually entered host: same address, same id."""
    return f"manual-{uuid.uuid5(uuid.NAMESPACE_DNS, normalize_host(host))}"


def _slug(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "device"


def _enum_value(enum_cls, raw, default):
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        return default


@dataclass
class Device:
    """A renderer device.  Only ``status`` changes after creation."""

    id: str
    name: str
    host: str
    kind: DeviceKind = DeviceKind.DLNA
    status: DeviceStatus = DeviceStatus.IDLE
    manual: bool = False

    @classmethod
    def from_description(cls, desc: dict) -> "Device":
        """Build a Device from a renderer description dict.

        The renderer service supplies ``id`` when it knows a stable one
        (UDN/USN); otherwise the id is derived from name + host.
        """
        host = str(desc.get("host") or "")
        name = desc.get("name") or "Unknown Device"
        device_id = desc.get("id") or f"{_slug(name)}-{_slug(host)}"
        return cls(
            id=str(device_id),
            name=str(name),
            host=host,
            kind=_enum_value(DeviceKind, desc.get("kind") or desc.get("type") or "dlna",
                             DeviceKind.DLNA),
            status=_enum_value(DeviceStatus, desc.get("status") or "idle", DeviceStatus.IDLE),
        )

    @classmethod
    def manual_entry(cls, host: str, desc: dict | None = None) -> "Device":
        desc = desc or {}
        canonical = normalize_host(host)
        return cls(
            id=manual_device_id(canonical),
            name=str(desc.get("name") or f"TV @ {canonical}"),
            host=canonical,
            kind=_enum_value(DeviceKind, desc.get("kind") or desc.get("type") or "dlna",
                             DeviceKind.DLNA),
            status=DeviceStatus.IDLE,
            manual=True,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "kind": self.kind.value,
            "status": self.status.value,
            "manual": self.manual,
        }


@dataclass(frozen=True)
class QueueItem:
    media_id: str
    path: str
    title: str
    duration_seconds: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "QueueItem":
        duration = data.get("duration_seconds", data.get("duration"))
        return cls(
            media_id=str(data.get("media_id", data.get("mediaId", ""))),
            path=str(data["path"]),
            title=str(data.get("title") or data["path"]),
            duration_seconds=float(duration) if duration is not None else None,
        )

    def to_dict(self) -> dict:
        return {
            "media_id": self.media_id,
            "path": self.path,
            "title": self.title,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class QueueState:
    """Read-only snapshot of the queue."""

    items: tuple[QueueItem, ...] = ()
    current_index: int = -1
    shuffle_enabled: bool = False
    repeat_mode: RepeatMode = RepeatMode.NONE

    @property
    def current_item(self) -> QueueItem | None:
        if 0 <= self.current_index < len(self.items):
            return self.items[self.current_index]
        return None

    def to_dict(self) -> dict:
        current = self.current_item
        return {
            "items": [item.to_dict() for item in self.items],
            "current_index": self.current_index,
            "shuffle_enabled": self.shuffle_enabled,
            "repeat_mode": self.repeat_mode.value,
            "current_item": current.to_dict() if current else None,
        }


@dataclass(frozen=True)
class CastStatus:
    """Snapshot of the device's playback state.  Replaced wholesale, never patched."""

    device_id: str = ""
    state: PlaybackState = PlaybackState.IDLE
    current_time_seconds: float = 0.0
    duration_seconds: float = 0.0
    volume: float = 1.0
    muted: bool = False
    media_path: str | None = None

    @classmethod
    def idle(cls, device_id: str = "") -> "CastStatus":
        return cls(device_id=device_id)

    @classmethod
    def from_dict(cls, data: dict, device_id: str = "") -> "CastStatus":
        """Parse a status frame from the renderer."""
        volume = data.get("volume", 1.0)
        if isinstance(volume, dict):
            volume = volume.get("level", 1.0)
        volume = 1.0 if volume is None else float(volume)
        return cls(
            device_id=str(data.get("device_id") or data.get("deviceId") or device_id),
            state=_enum_value(PlaybackState, data.get("state") or "idle", PlaybackState.IDLE),
            current_time_seconds=max(0.0, float(
                data.get("current_time_seconds", data.get("currentTime")) or 0)),
            duration_seconds=max(0.0, float(
                data.get("duration_seconds", data.get("duration")) or 0)),
            volume=max(0.0, min(1.0, volume)),
            muted=bool(data.get("muted", False)),
            media_path=data.get("media_path", data.get("mediaPath")),
        )

    def with_time(self, seconds: float) -> "CastStatus":
        return replace(self, current_time_seconds=seconds)

    def with_state(self, state: PlaybackState) -> "CastStatus":
        return replace(self, state=state)

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "state": self.state.value,
            "current_time_seconds": self.current_time_seconds,
            "duration_seconds": self.duration_seconds,
            "volume": self.volume,
            "muted": self.muted,
            "media_path": self.media_path,
        }


@dataclass
class EngineSettings:
    """Timeouts and intervals used by the engine components."""

    discovery_duration: float = 10.0
    command_timeout: float = 5.0
    connect_timeout: float = 5.0
    poll_interval: float = 1.0
    seek_tolerance: float = 1.5
    seek_guard_timeout: float = 5.0

    @classmethod
    def from_config(cls) -> "EngineSettings":
        from .lib.config import cfg

        return cls(
            discovery_duration=float(cfg("discovery", "duration", default=10)),
            command_timeout=float(cfg("timeouts", "command", default=5)),
            connect_timeout=float(cfg("timeouts", "connect", default=5)),
            poll_interval=float(cfg("sync", "poll_interval", default=1.0)),
            seek_tolerance=float(cfg("sync", "seek_tolerance", default=1.5)),
            seek_guard_timeout=float(cfg("sync", "seek_guard_timeout", default=5.0)),
        )
