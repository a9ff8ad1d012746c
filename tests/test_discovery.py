"""
Tests for bounded device discovery.
"""
import asyncio

import pytest

from conftest import SPEAKER, TV, FakeRenderer, Recorder
from vaultcast.discovery import DiscoveryController
from vaultcast.errors import DiscoveryError, RendererError, UnsupportedError
from vaultcast.events import (DEVICE_FOUND, DISCOVERY_ERROR, DISCOVERY_STARTED,
                              DISCOVERY_STOPPED, EventBus)
from vaultcast.registry import DeviceRegistry

ALL = (DEVICE_FOUND, DISCOVERY_STARTED, DISCOVERY_STOPPED, DISCOVERY_ERROR)


def controller(renderer, settings):
    bus = EventBus()
    registry = DeviceRegistry()
    rec = Recorder(bus, *ALL)
    return DiscoveryController(registry, renderer, bus, settings), registry, rec


async def wait_finished(discovery):
    for _ in range(100):
        if not discovery.running:
            return
        await asyncio.sleep(0.01)


class TestDiscovery:
    def test_scan_registers_devices_once(self, settings):
        renderer = FakeRenderer(devices=[TV, SPEAKER, TV, {**SPEAKER, "status": "playing"}])
        discovery, registry, rec = controller(renderer, settings)

        async def scenario():
            await discovery.start()
            await wait_finished(discovery)

        asyncio.run(scenario())
        assert [d.name for d in registry.all()] == ["Living Room TV", "Kitchen"]
        assert [args[0].id for args in rec.of(DEVICE_FOUND)] == ["uuid:tv-1", "uuid:spk-2"]
        assert registry.get("uuid:spk-2").status.value == "playing"
        assert len(rec.of(DISCOVERY_STARTED)) == 1
        assert len(rec.of(DISCOVERY_STOPPED)) == 1

    def test_start_while_running_is_noop(self, settings):
        renderer = FakeRenderer(devices=[TV, SPEAKER])
        renderer.scan_delay = 0.05
        discovery, _, rec = controller(renderer, settings)

        async def scenario():
            await discovery.start()
            await discovery.start()
            await discovery.stop()

        asyncio.run(scenario())
        assert len(rec.of(DISCOVERY_STARTED)) == 1

    def test_stop_cancels_scan(self, settings):
        renderer = FakeRenderer(devices=[TV, SPEAKER])
        renderer.scan_delay = 0.05
        discovery, registry, rec = controller(renderer, settings)

        async def scenario():
            await discovery.start()
            await asyncio.sleep(0.07)
            await discovery.stop()
            count = len(registry)
            await asyncio.sleep(0.1)
            return count

        count = asyncio.run(scenario())
        assert count == 1
        assert len(registry) == 1
        assert not discovery.running
        assert len(rec.of(DISCOVERY_STOPPED)) == 1

    def test_stop_when_idle(self, settings):
        discovery, _, rec = controller(FakeRenderer(), settings)
        asyncio.run(discovery.stop())
        assert rec.of(DISCOVERY_STOPPED) == []

    def test_network_unavailable(self, settings):
        renderer = FakeRenderer(devices=[TV])
        renderer.ready_error = RendererError("bridge down")
        discovery, registry, rec = controller(renderer, settings)

        with pytest.raises(DiscoveryError):
            asyncio.run(discovery.start())
        assert len(registry) == 0
        assert not discovery.running
        assert rec.of(DISCOVERY_STARTED) == []

    def test_scan_failure_reported_once(self, settings):
        renderer = FakeRenderer(devices=[TV])
        renderer.scan_error = RendererError("socket closed")
        discovery, registry, rec = controller(renderer, settings)

        async def scenario():
            await discovery.start()
            await wait_finished(discovery)

        asyncio.run(scenario())
        assert len(registry) == 1
        assert rec.of(DISCOVERY_ERROR) == [("socket closed",)]
        assert len(rec.of(DISCOVERY_STOPPED)) == 1

    def test_malformed_description_skipped(self, settings):
        renderer = FakeRenderer(devices=["not-a-dict", TV])
        discovery, registry, _ = controller(renderer, settings)

        async def scenario():
            await discovery.start()
            await wait_finished(discovery)

        asyncio.run(scenario())
        assert [d.id for d in registry.all()] == ["uuid:tv-1"]

    def test_unsupported(self, settings):
        renderer = FakeRenderer(capabilities={"manual"})
        discovery, _, _ = controller(renderer, settings)
        with pytest.raises(UnsupportedError):
            asyncio.run(discovery.start())
