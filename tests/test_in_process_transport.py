"""Tests for the in-process transport wired to local playback controllers"""

import asyncio

import pytest

from speedrelay.broadcast import BadgeIndicator
from speedrelay.coordinator import Coordinator
from speedrelay.exceptions import DeliveryFailure
from speedrelay.local import LocalPlaybackController, MediaElement
from speedrelay.protocol import GetState, SetSpeed
from speedrelay.transport import InProcessTransport


class SlowController(LocalPlaybackController):
    async def handle_command(self, command):
        await asyncio.sleep(1)
        return await super().handle_command(command)


class TestInProcessTransport:
    @pytest.fixture
    def transport(self):
        return InProcessTransport()

    @pytest.mark.asyncio
    async def test_unknown_context(self, transport):
        with pytest.raises(DeliveryFailure) as exc_info:
            await transport.send("tab", 3, GetState())
        assert exc_info.value.reason == "no receiving end"
        assert exc_info.value.context_id == 3

    @pytest.mark.asyncio
    async def test_timeout(self):
        transport = InProcessTransport(timeout=0.01)
        transport.attach("tab", 1, SlowController())

        with pytest.raises(DeliveryFailure) as exc_info:
            await transport.send("tab", 1, GetState())
        assert exc_info.value.reason == "timed out"

    @pytest.mark.asyncio
    async def test_reply_of_attached_controller(self, transport):
        transport.attach("tab", 1, LocalPlaybackController())

        reply = await transport.send("tab", 1, SetSpeed(speed=2.0))

        assert reply == {"speed": 2.0, "applied": False}

    @pytest.mark.asyncio
    async def test_detach(self, transport):
        controller = transport.attach("tab", 1, LocalPlaybackController())
        transport.detach("tab", 1)

        assert transport.controller("tab", 1) is None
        with pytest.raises(DeliveryFailure):
            await transport.send("tab", 1, GetState())
        # a detached controller no longer reports
        await controller.report_status()


class TestLocalSession:
    """A coordinator driving real controllers: one top-level document and one embedded player"""

    @pytest.fixture
    def transport(self):
        return InProcessTransport()

    @pytest.fixture
    def coordinator(self, transport):
        coordinator = Coordinator(transport=transport)
        transport.bind(coordinator)
        return coordinator

    @pytest.fixture
    def top(self, transport):
        return transport.attach("tab", 0, LocalPlaybackController())

    @pytest.fixture
    def player(self, transport):
        return transport.attach("tab", 7, LocalPlaybackController())

    @pytest.mark.asyncio
    async def test_playing_player_receives_changes(self, coordinator, top, player):
        video = await player.add_media(MediaElement())
        await player.play(video)

        first = await coordinator.change_speed("tab", 0.25)
        second = await coordinator.change_speed("tab", 0.25)

        assert (first.context_id, first.speed, first.applied) == (7, 1.25, True)
        assert second.speed == 1.5
        assert video.playback_rate == 1.5
        assert top.current_speed == 1.0
        assert coordinator.registry.cached_speed("tab") == 1.5

    @pytest.mark.asyncio
    async def test_top_level_document_receives_speed_without_media(self, coordinator, top, player):
        result = await coordinator.set_speed("tab", 2.0)

        assert result.context_id == 0
        assert result.applied is False
        assert top.current_speed == 2.0
        assert player.current_speed == 1.0

    @pytest.mark.asyncio
    async def test_non_finite_speed_keeps_previous_value(self, coordinator, top):
        await coordinator.set_speed("tab", 1.5)
        result = await coordinator.set_speed("tab", float("nan"))

        assert result.speed == 1.5
        assert result.applied is False
        assert top.current_speed == 1.5

    @pytest.mark.asyncio
    async def test_rejected_speed_keeps_player_playing(self, coordinator, top, player):
        video = await player.add_media(MediaElement())
        await player.play(video)

        result = await coordinator.set_speed("tab", float("nan"))

        assert result.applied is False
        status = coordinator.registry.get_context("tab", 7)
        assert status.has_playing is True
        assert status.has_media is True
        assert coordinator.dispatcher.candidates("tab")[0] == 7
        assert video.playback_rate == 1.0

    @pytest.mark.asyncio
    async def test_removed_player_is_pruned(self, transport, coordinator, top, player):
        video = await player.add_media(MediaElement())
        await player.play(video)
        transport.detach("tab", 7)

        result = await coordinator.set_speed("tab", 2.0)

        assert result.context_id == 0
        assert coordinator.registry.get_context("tab", 7) is None

    @pytest.mark.asyncio
    async def test_shortcut_moves_focus_and_badge(self, coordinator, player):
        badge = BadgeIndicator()
        badge.attach(coordinator.broadcast)
        video = await player.add_media(MediaElement())
        await player.play(video)

        await player.handle_key("d")

        assert coordinator.registry.focused_session == "tab"
        assert coordinator.registry.cached_speed("tab") == 1.25
        assert badge.get("tab").text == "1.25"
        assert (await coordinator.get_state()).speed == 1.25

    @pytest.mark.asyncio
    async def test_settings_reach_controllers(self, coordinator, top, player):
        await top.report_status()
        await player.add_media(MediaElement())

        await coordinator.update_settings({"defaultSpeed": 1.5, "maxSpeed": 3.0})

        assert top.current_speed == 1.5
        assert player.current_speed == 1.5
        assert player.settings.max_speed == 3.0

    @pytest.mark.asyncio
    async def test_unload_ends_session(self, coordinator, top):
        await top.report_status()
        await top.unload()

        assert not coordinator.registry.has_session("tab")

    @pytest.mark.asyncio
    async def test_relative_changes_compose(self, coordinator, transport, player):
        video = await player.add_media(MediaElement())
        await player.play(video)
        other = transport.attach("other", 0, LocalPlaybackController())

        await coordinator.change_speed("tab", 0.25)
        stepwise = await coordinator.change_speed("tab", 0.5)
        at_once = await coordinator.change_speed("other", 0.75)

        assert stepwise.speed == at_once.speed == 1.75
        assert other.current_speed == 1.75
