"""
Tests for status frame merging, the seek guard and end-of-item detection.
"""
import asyncio

import pytest

from conftest import TV, FakeRenderer, Recorder
from vaultcast.errors import CommandRejectedError, CommandTimeoutError, NoActiveDeviceError, RendererError
from vaultcast.events import QUEUE_ENDED, STATUS_UPDATE, EventBus
from vaultcast.models import CastStatus, Device, DeviceStatus, PlaybackState
from vaultcast.registry import DeviceRegistry
from vaultcast.status_sync import StatusSynchronizer

DEVICE = Device.from_description(TV)


def frame(state="playing", t=0.0, duration=200.0, **extra):
    return CastStatus(device_id=DEVICE.id, state=PlaybackState(state),
                      current_time_seconds=t, duration_seconds=duration, **extra)


def attached(settings, clock, renderer=None, registry=None):
    bus = EventBus()
    sync = StatusSynchronizer(renderer or FakeRenderer(), bus, settings,
                              registry=registry, clock=clock)
    sync.attach(DEVICE, poll=False)
    return sync, bus


class TestFrames:
    """Frames replace the status wholesale."""

    def test_attach_resets_to_idle(self, settings, clock):
        sync, _ = attached(settings, clock)
        assert sync.status == CastStatus.idle(DEVICE.id)
        assert sync.status.volume == 1.0

    def test_frame_replaces_status(self, settings, clock):
        sync, bus = attached(settings, clock)
        rec = Recorder(bus, STATUS_UPDATE)
        assert sync.apply(frame(t=10, volume=0.4)) is True
        assert sync.status.current_time_seconds == 10
        assert sync.status.volume == 0.4
        assert len(rec.of(STATUS_UPDATE)) == 1

    def test_duplicate_frame_not_republished(self, settings, clock):
        sync, bus = attached(settings, clock)
        rec = Recorder(bus, STATUS_UPDATE)
        sync.apply(frame(t=10))
        assert sync.apply(frame(t=10)) is False
        assert len(rec.of(STATUS_UPDATE)) == 1

    def test_frame_for_other_device_dropped(self, settings, clock):
        sync, _ = attached(settings, clock)
        other = CastStatus(device_id="uuid:other", state=PlaybackState.PLAYING)
        assert sync.apply(other) is False
        assert sync.status.state == PlaybackState.IDLE

    def test_frame_updates_registry_status(self, settings, clock):
        registry = DeviceRegistry()
        registry.add(Device.from_description(TV))
        sync, _ = attached(settings, clock, registry=registry)
        sync.apply(frame("paused", t=3))
        assert registry.get(DEVICE.id).status == DeviceStatus.PAUSED

    def test_detach_resets_status(self, settings, clock):
        async def scenario():
            sync, _ = attached(settings, clock)
            sync.apply(frame(t=50))
            await sync.detach()
            return sync.status

        status = asyncio.run(scenario())
        assert status == CastStatus.idle()

    def test_parse_camel_case_frame(self):
        status = CastStatus.from_dict(
            {"state": "PLAYING", "currentTime": 12.5, "duration": 300,
             "volume": {"level": 1.7}, "mediaPath": "/m/a.mp4"}, device_id="d1")
        assert status.device_id == "d1"
        assert status.state == PlaybackState.PLAYING
        assert status.current_time_seconds == 12.5
        assert status.duration_seconds == 300
        assert status.volume == 1.0
        assert status.media_path == "/m/a.mp4"

    def test_parse_unknown_state(self):
        status = CastStatus.from_dict({"state": "TRANSITIONING"}, device_id="d1")
        assert status.state == PlaybackState.IDLE


class TestSeekGuard:
    def test_optimistic_position(self, settings, clock):
        sync, _ = attached(settings, clock)
        sync.apply(frame(t=10))
        sync.begin_seek(120)
        assert sync.seeking
        assert sync.status.current_time_seconds == 120

    def test_stale_frames_suppressed_until_confirmed(self, settings, clock):
        sync, _ = attached(settings, clock)
        sync.apply(frame(t=10))
        sync.begin_seek(120)
        clock.advance(0.5)
        assert sync.apply(frame(t=11)) is False
        assert sync.status.current_time_seconds == 120

        assert sync.apply(frame(t=120.8)) is True
        assert not sync.seeking
        assert sync.status.current_time_seconds == 120.8

        # Normal merging after confirmation
        assert sync.apply(frame(t=30)) is True
        assert sync.status.current_time_seconds == 30

    def test_guard_times_out(self, settings, clock):
        sync, _ = attached(settings, clock)
        sync.begin_seek(120)
        clock.advance(settings.seek_guard_timeout - 0.1)
        assert sync.apply(frame(t=12)) is False
        clock.advance(0.2)
        assert sync.apply(frame(t=13)) is True
        assert not sync.seeking
        assert sync.status.current_time_seconds == 13

    def test_cancel_seek(self, settings, clock):
        sync, _ = attached(settings, clock)
        sync.begin_seek(120)
        sync.cancel_seek()
        assert sync.seek_target is None
        assert sync.apply(frame(t=12)) is True

    def test_cancel_seek_republishes_device_status(self, settings, clock):
        sync, bus = attached(settings, clock)
        sync.apply(frame("paused", t=10))
        rec = Recorder(bus, STATUS_UPDATE)
        sync.begin_seek(150)
        sync.cancel_seek()
        assert sync.status == frame("paused", t=10)
        assert [s.current_time_seconds for (s,) in rec.of(STATUS_UPDATE)] == [150, 10]

    def test_cancel_seek_uses_newest_suppressed_frame(self, settings, clock):
        sync, _ = attached(settings, clock)
        sync.apply(frame(t=10))
        sync.begin_seek(150)
        assert sync.apply(frame(t=11)) is False
        sync.cancel_seek()
        assert sync.status.current_time_seconds == 11

    def test_guard_expires_without_frames(self, settings, clock):
        sync, _ = attached(settings, clock)
        sync.begin_seek(120)
        assert sync.seek_target == 120
        clock.advance(settings.seek_guard_timeout)
        assert not sync.seeking
        assert sync.seek_target is None

    def test_load_clears_guard(self, settings, clock):
        sync, _ = attached(settings, clock)
        sync.begin_seek(120)
        sync.begin_load()
        assert not sync.seeking


class TestItemEnd:
    def run(self, settings, clock, frames, load_between=False):
        async def scenario():
            sync, _ = attached(settings, clock)
            ended = []

            async def on_end():
                ended.append("ended")

            sync.on_item_ended = on_end
            for i, f in enumerate(frames):
                if load_between and i == 1:
                    sync.begin_load()
                sync.apply(f)
            await sync.drain()
            return ended

        return asyncio.run(scenario())

    def test_playing_to_stopped_fires_once(self, settings, clock):
        ended = self.run(settings, clock, [
            frame("playing", t=190), frame("stopped", t=0), frame("idle", t=0),
        ])
        assert ended == ["ended"]

    def test_pause_is_not_an_end(self, settings, clock):
        ended = self.run(settings, clock, [frame("playing", t=5), frame("paused", t=5)])
        assert ended == []

    def test_needs_playing_first(self, settings, clock):
        ended = self.run(settings, clock, [frame("buffering", t=0), frame("stopped", t=0)])
        assert ended == []

    def test_load_disarms_detection(self, settings, clock):
        ended = self.run(settings, clock, [
            frame("playing", t=190), frame("stopped", t=0),
        ], load_between=True)
        assert ended == []

    def test_end_queue_publishes_stopped(self, settings, clock):
        sync, bus = attached(settings, clock)
        rec = Recorder(bus, QUEUE_ENDED)
        sync.apply(frame(t=100))
        sync.end_queue()
        assert sync.status.state == PlaybackState.STOPPED
        assert len(rec.of(QUEUE_ENDED)) == 1


class TestRefresh:
    def test_refresh_applies_fetched_frame(self, settings, clock):
        renderer = FakeRenderer()
        renderer.status = {"state": "playing", "current_time_seconds": 42, "duration_seconds": 90}

        async def scenario():
            sync, _ = attached(settings, clock, renderer=renderer)
            return await sync.refresh()

        status = asyncio.run(scenario())
        assert status.state == PlaybackState.PLAYING
        assert status.current_time_seconds == 42
        assert status.device_id == DEVICE.id

    def test_refresh_without_device(self, settings, clock):
        sync = StatusSynchronizer(FakeRenderer(), EventBus(), settings, clock=clock)
        with pytest.raises(NoActiveDeviceError):
            asyncio.run(sync.refresh())

    def test_refresh_rejected(self, settings, clock):
        renderer = FakeRenderer()

        async def failing(device):
            raise RendererError("no transport", code=501)

        renderer.fetch_status = failing

        async def scenario():
            sync, _ = attached(settings, clock, renderer=renderer)
            await sync.refresh()

        with pytest.raises(CommandRejectedError) as exc:
            asyncio.run(scenario())
        assert exc.value.code == 501

    def test_refresh_timeout(self, settings, clock):
        renderer = FakeRenderer()

        async def slow(device):
            await asyncio.sleep(5)
            return {}

        renderer.fetch_status = slow

        async def scenario():
            sync, _ = attached(settings, clock, renderer=renderer)
            await sync.refresh()

        with pytest.raises(CommandTimeoutError):
            asyncio.run(scenario())

    def test_poll_loop_pulls_frames(self, settings, clock):
        settings.poll_interval = 0.01
        renderer = FakeRenderer()
        renderer.status = {"state": "playing", "current_time_seconds": 7}

        async def scenario():
            sync = StatusSynchronizer(renderer, EventBus(), settings, clock=clock)
            sync.attach(DEVICE)
            await asyncio.sleep(0.05)
            status = sync.status
            await sync.detach()
            return status

        status = asyncio.run(scenario())
        assert status.state == PlaybackState.PLAYING
        assert status.current_time_seconds == 7
