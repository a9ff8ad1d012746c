"""
Shared fixtures: an in-memory renderer and fast engine settings.
"""
import asyncio

import pytest

from vaultcast.errors import RendererError
from vaultcast.events import EventBus
from vaultcast.models import EngineSettings, QueueItem
from vaultcast.renderers.base import RendererService


class FakeRenderer(RendererService):
    """Records every command; failures and delays are set per test."""

    name = "fake"

    def __init__(self, devices=(), capabilities=None):
        if capabilities is not None:
            self.capabilities = frozenset(capabilities)
        self.devices = list(devices)
        self.hosts: dict[str, dict] = {}
        self.unreachable: set[str] = set()
        self.sent: list[tuple[str, str, dict]] = []
        self.errors: dict[str, RendererError] = {}
        self.delays: dict[str, float] = {}
        self.status: dict = {"state": "idle"}
        self.ready_error: RendererError | None = None
        self.scan_error: RendererError | None = None
        self.scan_delay = 0.0
        self.probe_delay = 0.0
        self.closed = False

    async def ready(self):
        if self.ready_error:
            raise self.ready_error

    async def scan(self, duration):
        for desc in self.devices:
            if self.scan_delay:
                await asyncio.sleep(self.scan_delay)
            yield desc
        if self.scan_error:
            raise self.scan_error

    async def probe(self, host):
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if host in self.unreachable:
            raise RendererError(f"{host} unreachable")
        return self.hosts.get(host, {"host": host})

    async def send(self, device, command, **args):
        self.sent.append((device.id, command, args))
        delay = self.delays.get(command)
        if delay:
            await asyncio.sleep(delay)
        error = self.errors.get(command)
        if error:
            raise error

    async def fetch_status(self, device):
        return dict(self.status)

    async def close(self):
        self.closed = True

    def commands(self, device_id=None):
        return [cmd for dev, cmd, _ in self.sent if device_id in (None, dev)]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Recorder:
    """Collects (event, args) pairs from an EventBus."""

    def __init__(self, bus: EventBus, *events):
        self.calls = []
        for event in events:
            bus.subscribe(event, lambda *args, _e=event: self.calls.append((_e, args)))

    def of(self, event):
        return [args for e, args in self.calls if e == event]


TV = {"id": "uuid:tv-1", "name": "Living Room TV", "host": "192.168.1.20", "kind": "dlna"}
SPEAKER = {"id": "uuid:spk-2", "name": "Kitchen", "host": "192.168.1.30", "kind": "chromecast"}


def make_items(*titles, duration=200.0):
    return [QueueItem(media_id=t.lower(), path=f"/media/{t}.mp4", title=t,
                      duration_seconds=duration) for t in titles]


@pytest.fixture
def settings():
    # poll_interval=0 keeps the status poll loop off; tests push frames
    return EngineSettings(
        discovery_duration=1.0,
        command_timeout=0.2,
        connect_timeout=0.2,
        poll_interval=0,
        seek_tolerance=1.5,
        seek_guard_timeout=5.0,
    )


@pytest.fixture
def renderer():
    return FakeRenderer(devices=[TV, SPEAKER])


@pytest.fixture
def clock():
    return FakeClock()
