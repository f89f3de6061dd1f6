"""Tests for the reference local playback controller"""

import math

import pytest

from speedrelay.config import SpeedSettings
from speedrelay.exceptions import InvalidCommand
from speedrelay.local import LocalPlaybackController, MediaElement
from speedrelay.protocol import (
    ActivityReport,
    ChangeSpeed,
    ConfigChanged,
    GetState,
    SessionEnded,
    SessionFocused,
    SetSpeed,
    StatusReport,
)


class TestLocalPlaybackController:
    @pytest.fixture
    def reports(self):
        return []

    @pytest.fixture
    def controller(self, reports):
        async def reporter(message):
            reports.append(message)

        return LocalPlaybackController(reporter=reporter)

    @pytest.fixture
    def video(self):
        return MediaElement()

    def test_starts_at_default_speed(self, controller):
        assert controller.current_speed == 1.0
        assert controller.should_enforce is True
        assert controller.has_media() is False

    def test_speed_is_stored_without_media(self, controller):
        response = controller.set_current_speed(2.0)
        assert response.speed == 2.0
        assert response.applied is False
        assert controller.current_speed == 2.0

    @pytest.mark.asyncio
    async def test_speed_is_applied_to_playing_media(self, controller, video):
        await controller.add_media(video)
        paused = await controller.add_media(MediaElement())
        await controller.play(video)

        response = controller.set_current_speed(1.5)

        assert response.applied is True
        assert video.playback_rate == 1.5
        assert paused.playback_rate == 1.0

    def test_speed_is_clamped(self, controller):
        assert controller.set_current_speed(99).speed == 4.0
        assert controller.set_current_speed(0).speed == 0.1

    def test_non_finite_speed_keeps_previous_value(self, controller):
        controller.set_current_speed(1.5)
        with pytest.raises(InvalidCommand):
            controller.set_current_speed(math.nan)
        assert controller.current_speed == 1.5

    @pytest.mark.asyncio
    async def test_playing_media_gets_current_speed(self, controller, video):
        await controller.add_media(video)
        controller.set_current_speed(2.0)
        await controller.play(video)
        assert video.playback_rate == 2.0

    @pytest.mark.asyncio
    async def test_no_enforcement_when_apply_on_load_is_off(self):
        controller = LocalPlaybackController(settings=SpeedSettings(apply_on_load=False))
        video = await controller.add_media(MediaElement(playback_rate=0.5))
        await controller.play(video)
        assert video.playback_rate == 0.5

    @pytest.mark.asyncio
    async def test_rate_changes_by_the_page_are_overridden(self, controller, video):
        await controller.add_media(video)
        await controller.play(video)
        await controller.on_rate_change(video, 3.0)
        assert video.playback_rate == 1.0

    @pytest.mark.asyncio
    async def test_media_changes_are_reported(self, controller, video, reports):
        await controller.add_media(video)
        await controller.play(video)
        await controller.pause(video)
        await controller.end(video)
        await controller.remove_media(video)

        assert all(isinstance(report, StatusReport) for report in reports)
        assert [(r.has_media, r.has_playing) for r in reports] == [
            (True, False),
            (True, True),
            (True, False),
            (True, False),
            (False, False),
        ]

    @pytest.mark.asyncio
    async def test_lifecycle_reports(self, controller, reports):
        await controller.focus()
        await controller.unload()
        assert isinstance(reports[0], SessionFocused)
        assert isinstance(reports[1], SessionEnded)

    @pytest.mark.asyncio
    async def test_failing_reporter_is_tolerated(self):
        async def reporter(message):
            raise ConnectionError("gone")

        controller = LocalPlaybackController(reporter=reporter)
        await controller.add_media(MediaElement())
        assert controller.has_media()


class TestHandleCommand:
    @pytest.fixture
    def controller(self):
        return LocalPlaybackController()

    @pytest.mark.asyncio
    async def test_get_state(self, controller):
        response = await controller.handle_command(GetState())
        assert response["speed"] == 1.0
        assert response["enforceOnLoad"] is True
        assert response["hasMedia"] is False
        assert response["hasPlaying"] is False
        assert response["settings"]["defaultSpeed"] == 1.0

    @pytest.mark.asyncio
    async def test_set_speed(self, controller):
        response = await controller.handle_command(SetSpeed(speed=2.5))
        assert response == {"speed": 2.5, "applied": False}

    @pytest.mark.asyncio
    async def test_set_speed_is_idempotent(self, controller):
        first = await controller.handle_command(SetSpeed(speed=1.75))
        second = await controller.handle_command(SetSpeed(speed=1.75))
        assert first == second
        assert controller.current_speed == 1.75

    @pytest.mark.asyncio
    async def test_changes_compose(self, controller):
        await controller.handle_command(ChangeSpeed(delta=0.25))
        response = await controller.handle_command(ChangeSpeed(delta=0.5))
        assert response["speed"] == 1.75

    @pytest.mark.asyncio
    async def test_rejected_speed(self, controller):
        response = await controller.handle_command(SetSpeed(speed=math.inf))
        assert response == {"speed": 1.0, "applied": False, "hasMedia": False, "hasPlaying": False}

    @pytest.mark.asyncio
    async def test_rejected_speed_reports_playing_media(self, controller):
        video = await controller.add_media(MediaElement())
        await controller.play(video)

        response = await controller.handle_command(SetSpeed(speed=math.nan))

        assert response["applied"] is False
        assert response["hasPlaying"] is True
        assert response["hasMedia"] is True
        assert video.playback_rate == 1.0

    @pytest.mark.asyncio
    async def test_wire_commands(self, controller):
        response = await controller.handle_command({"type": "SET_SPEED", "speed": 3})
        assert response["speed"] == 3.0

    @pytest.mark.asyncio
    async def test_new_default_speed_is_applied(self, controller):
        controller.set_current_speed(2.0)
        response = await controller.handle_command(
            ConfigChanged(settings=SpeedSettings(default_speed=1.5))
        )
        assert response["speed"] == 1.5

    @pytest.mark.asyncio
    async def test_current_speed_is_clamped_to_new_bounds(self, controller):
        controller.set_current_speed(3.5)
        await controller.handle_command(ConfigChanged(settings=SpeedSettings(max_speed=2.0)))
        assert controller.current_speed == 2.0
        assert controller.settings.max_speed == 2.0

    @pytest.mark.asyncio
    async def test_commands_report_status(self):
        reports = []

        async def reporter(message):
            reports.append(message)

        controller = LocalPlaybackController(reporter=reporter)
        await controller.handle_command(SetSpeed(speed=2.0))
        assert reports == [StatusReport(has_media=False, has_playing=False, speed=2.0)]


class TestShortcuts:
    @pytest.fixture
    def reports(self):
        return []

    @pytest.fixture
    def controller(self, reports):
        async def reporter(message):
            reports.append(message)

        return LocalPlaybackController(reporter=reporter)

    @pytest.mark.asyncio
    async def test_increase_decrease_reset(self, controller):
        assert (await controller.handle_key("d")).speed == 1.25
        assert (await controller.handle_key("D")).speed == 1.5
        assert (await controller.handle_key("a")).speed == 1.25
        assert (await controller.handle_key("s")).speed == 1.0

    @pytest.mark.asyncio
    async def test_unbound_key(self, controller, reports):
        assert await controller.handle_key("x") is None
        assert reports == []

    @pytest.mark.asyncio
    async def test_shortcut_is_reported_as_activity(self, controller, reports):
        video = await controller.add_media(MediaElement())
        await controller.play(video)
        reports.clear()

        await controller.handle_key("d")

        assert reports[0] == ActivityReport(speed=1.25, applied=True)
        assert isinstance(reports[1], StatusReport)
