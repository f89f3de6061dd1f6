"""Reference local playback controller

The context side of the protocol for one execution context. Media discovery is
not modelled: media elements are added and driven explicitly, which makes this
controller usable as an in-process context and as a test double.
"""

import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from speedrelay.config import SpeedSettings, default_settings
from speedrelay.exceptions import InvalidCommand, ProtocolError
from speedrelay.logging import logger
from speedrelay.protocol.messages import (
    ActivityReport,
    ChangeSpeed,
    ConfigChanged,
    ContextResponse,
    GetState,
    ProtocolMessage,
    SessionEnded,
    SessionFocused,
    SetSpeed,
    StatusReport,
    parse_context_command,
)

# Rates closer than this are considered equal
RATE_TOLERANCE = 0.001

Reporter = Callable[[ProtocolMessage], Awaitable[None]]


@dataclass(eq=False)
class MediaElement:
    """Anything with a settable playback rate"""

    paused: bool = True
    ended: bool = False
    playback_rate: float = 1.0

    @property
    def playing(self) -> bool:
        return not self.paused and not self.ended


class LocalPlaybackController:
    """Applies requested speeds to the media of one context and reports its status"""

    def __init__(self, settings: SpeedSettings = default_settings, reporter: Optional[Reporter] = None):
        self._settings = settings
        self._current_speed = settings.default_speed
        self._should_enforce = settings.apply_on_load
        self._media: list[MediaElement] = []
        self._reporter = reporter

    @property
    def settings(self) -> SpeedSettings:
        return self._settings

    @property
    def current_speed(self) -> float:
        return self._current_speed

    @property
    def should_enforce(self) -> bool:
        return self._should_enforce

    @property
    def media(self) -> list[MediaElement]:
        return list(self._media)

    def set_reporter(self, reporter: Optional[Reporter]) -> None:
        self._reporter = reporter

    def has_media(self) -> bool:
        return len(self._media) > 0

    def playing_media(self) -> list[MediaElement]:
        return [media for media in self._media if media.playing]

    def status_report(self) -> StatusReport:
        return StatusReport(
            has_media=self.has_media(),
            has_playing=len(self.playing_media()) > 0,
            speed=self._current_speed,
        )

    async def _report(self, message: ProtocolMessage) -> None:
        if self._reporter is None:
            return
        try:
            await self._reporter(message)
        except Exception as e:
            logger.warning(f"Could not report {message.type}: {e}")

    async def report_status(self) -> None:
        await self._report(self.status_report())

    async def focus(self) -> None:
        """The context became visible"""
        await self._report(SessionFocused())

    async def unload(self) -> None:
        """The page is going away"""
        await self._report(SessionEnded())

    # media lifecycle

    def _enforce(self, media: MediaElement) -> None:
        if self._should_enforce and media.playing:
            media.playback_rate = self._current_speed

    async def add_media(self, media: MediaElement) -> MediaElement:
        if media not in self._media:
            self._media.append(media)
            self._enforce(media)
            await self.report_status()
        return media

    async def remove_media(self, media: MediaElement) -> None:
        if media in self._media:
            self._media.remove(media)
            await self.report_status()

    async def play(self, media: MediaElement) -> None:
        media.paused = False
        media.ended = False
        self._enforce(media)
        await self.report_status()

    async def pause(self, media: MediaElement) -> None:
        media.paused = True
        await self.report_status()

    async def end(self, media: MediaElement) -> None:
        media.ended = True
        await self.report_status()

    async def on_rate_change(self, media: MediaElement, rate: float) -> None:
        """The page changed a media's rate on its own; enforcement wins while playing."""
        media.playback_rate = rate
        if abs(rate - self._current_speed) > RATE_TOLERANCE:
            self._enforce(media)
        await self.report_status()

    # speed

    def set_current_speed(
        self, value: float, force_enforce: bool = False, require_playing: bool = False
    ) -> ContextResponse:
        """Clamp and store a speed, applying it to whatever is playing.

        The value is kept for future playback when nothing plays; the response
        then reports ``applied=False`` whether or not playing media was required.

        Raises:
            InvalidCommand: if the value is not finite; the current speed is kept
        """
        target = self._settings.clamp(value)
        self._current_speed = target
        if force_enforce:
            self._should_enforce = True

        playing = self.playing_media()
        for media in playing:
            media.playback_rate = target
        applied = len(playing) > 0
        if require_playing and not applied:
            logger.debug(f"Speed {target} stored until playback starts")
        return ContextResponse(speed=target, applied=applied)

    def _rejected(self, error: InvalidCommand) -> ContextResponse:
        logger.warning(f"Rejected command: {error.message}")
        return ContextResponse(
            speed=self._current_speed,
            applied=False,
            has_playing=len(self.playing_media()) > 0,
            has_media=self.has_media(),
        )

    async def handle_command(self, command: Any) -> dict[str, Any]:
        """Answer one coordinator command with its wire response."""
        command = parse_context_command(command)

        if isinstance(command, GetState):
            response = ContextResponse(
                speed=self._current_speed,
                enforce_on_load=self._should_enforce,
                settings=self._settings,
                has_playing=len(self.playing_media()) > 0,
                has_media=self.has_media(),
            )
        elif isinstance(command, SetSpeed):
            try:
                response = self.set_current_speed(
                    command.speed, force_enforce=True, require_playing=command.require_playing
                )
            except InvalidCommand as e:
                response = self._rejected(e)
        elif isinstance(command, ChangeSpeed):
            try:
                response = self.set_current_speed(
                    self._current_speed + command.delta,
                    force_enforce=True,
                    require_playing=command.require_playing,
                )
            except InvalidCommand as e:
                response = self._rejected(e)
        elif isinstance(command, ConfigChanged):
            response = self._apply_settings(command.settings)
        else:
            raise ProtocolError(f"Unsupported command: {command.type}")

        await self.report_status()
        return response.model_dump(by_alias=True, exclude_none=True)

    def _apply_settings(self, settings: SpeedSettings) -> ContextResponse:
        previous = self._settings
        self._settings = settings
        self._should_enforce = settings.apply_on_load
        if not math.isclose(previous.default_speed, settings.default_speed):
            next_speed = settings.default_speed
        else:
            next_speed = self._current_speed
        return self.set_current_speed(next_speed, force_enforce=self._should_enforce)

    # keyboard shortcuts

    async def handle_key(self, key: str) -> Optional[ContextResponse]:
        """Apply one of the configured shortcuts and report it as user activity.

        Returns None for keys that are not bound.
        """
        key = str(key).lower()
        if key == self._settings.decrease_key:
            target = self._current_speed - self._settings.speed_step
        elif key == self._settings.increase_key:
            target = self._current_speed + self._settings.speed_step
        elif key == self._settings.reset_key:
            target = self._settings.default_speed
        else:
            return None

        response = self.set_current_speed(target, force_enforce=True, require_playing=True)
        await self._report(ActivityReport(speed=response.speed, applied=bool(response.applied)))
        await self.report_status()
        return response
