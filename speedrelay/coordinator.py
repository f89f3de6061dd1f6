"""Speedrelay Coordinator

Owns the registry, the dispatcher and the observer broadcast of one
installation. It handles the fire-and-forget reports of contexts (session
lifecycle), the requests of observers and the change notifications of the
external settings store.

Each inbound message is processed to completion on the event loop. Dispatches
for different sessions may interleave at their awaits; registry mutations stay
atomic per message and the last writer wins per status field.
"""

import math
from collections.abc import Mapping
from typing import Any, Optional, Union

from speedrelay.broadcast.events import ContextStatusChanged, SessionCleared, StateChanged
from speedrelay.broadcast.observer_broadcast import ObserverBroadcast
from speedrelay.config import SpeedSettings, default_settings
from speedrelay.dispatch.command_policy import CommandPolicy
from speedrelay.dispatch.dispatcher import CommandDispatcher, DispatchResult
from speedrelay.dispatch.transport_interface import ContextTransport
from speedrelay.exceptions import NoTargetError, ProtocolError
from speedrelay.logging import logger
from speedrelay.protocol.messages import (
    ActivityReport,
    ChangeSpeed,
    ConfigChanged,
    ContextId,
    ContextRemoved,
    GetState,
    ObserverChangeSpeed,
    ObserverGetCachedState,
    ObserverGetState,
    ObserverSetSpeed,
    SessionEnded,
    SessionFocused,
    SessionId,
    SessionSnapshot,
    SetSpeed,
    SpeedResult,
    StatusReport,
    parse_context_message,
    parse_observer_message,
    to_wire,
)
from speedrelay.registry.session_registry import SessionRegistry


def _is_finite(value: Any) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


class Coordinator:
    """Central coordinator for playback speed across the contexts of every session"""

    def __init__(
        self,
        transport: ContextTransport,
        settings: SpeedSettings = default_settings,
        registry: Optional[SessionRegistry] = None,
        broadcast: Optional[ObserverBroadcast] = None,
        policies: Optional[dict[str, CommandPolicy]] = None,
    ):
        self._settings = settings
        self._registry = registry if registry is not None else SessionRegistry()
        self._broadcast = broadcast if broadcast is not None else ObserverBroadcast()
        self._dispatcher = CommandDispatcher(self._registry, transport, policies)

    @property
    def settings(self) -> SpeedSettings:
        return self._settings

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def broadcast(self) -> ObserverBroadcast:
        return self._broadcast

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    def reset(self) -> None:
        """Forget every session and the focus pointer"""
        self._registry.reset()

    # context -> coordinator

    async def handle_context_message(
        self, session_id: SessionId, context_id: ContextId, message: Any
    ) -> None:
        """Process one fire-and-forget report from a context.

        Args:
            session_id: Session the sending context belongs to
            context_id: Sending context
            message: A context message model or its wire dict
        """
        try:
            message = parse_context_message(message)
        except ProtocolError as e:
            logger.warning(f"Dropping message from {session_id}/{context_id}: {e}")
            return

        logger.debug(f"{message.type} from {session_id}/{context_id}")
        if isinstance(message, StatusReport):
            await self._on_status_report(session_id, context_id, message)
        elif isinstance(message, ActivityReport):
            await self._on_activity_report(session_id, context_id, message)
        elif isinstance(message, SessionFocused):
            await self._on_session_focused(session_id)
        elif isinstance(message, SessionEnded):
            await self._on_session_ended(session_id)
        elif isinstance(message, ContextRemoved):
            self._registry.remove_context(session_id, context_id)

    async def _on_status_report(
        self, session_id: SessionId, context_id: ContextId, report: StatusReport
    ) -> None:
        status = self._registry.upsert_context(
            session_id,
            context_id,
            {
                "has_media": report.has_media,
                "has_playing": report.has_playing,
                "last_speed": report.speed,
            },
        )
        await self._broadcast.publish(
            ContextStatusChanged(
                session_id=session_id,
                context_id=context_id,
                has_media=status.has_media,
                has_playing=status.has_playing,
                speed=report.speed,
            )
        )

    async def _on_activity_report(
        self, session_id: SessionId, context_id: ContextId, report: ActivityReport
    ) -> None:
        self._remember(session_id, report.speed, allowed=report.applied)
        self._registry.upsert_context(
            session_id,
            context_id,
            {"has_media": True, "has_playing": report.applied, "last_speed": report.speed},
            activity=True,
        )
        await self._broadcast.publish(
            StateChanged(
                session_id=session_id,
                speed=report.speed,
                applied=report.applied,
                context_id=context_id,
            )
        )

    async def _on_session_focused(self, session_id: SessionId) -> None:
        self._registry.focus(session_id)
        session = self._registry.ensure_session(session_id)

        known = session.first_with_speed()
        if known is not None:
            context_id, status = known
            event = StateChanged(
                session_id=session_id,
                speed=status.last_speed,
                applied=status.has_playing,
                context_id=context_id,
            )
        elif session.cached_speed is not None:
            event = StateChanged(session_id=session_id, speed=session.cached_speed, applied=False)
        else:
            result = await self._dispatcher.dispatch(session_id, GetState())
            if result.response is None or result.response.speed is None:
                return
            event = StateChanged(
                session_id=session_id,
                speed=result.response.speed,
                applied=bool(result.response.has_playing),
                context_id=result.context_id,
            )
        await self._broadcast.publish(event)

    async def _on_session_ended(self, session_id: SessionId) -> None:
        self._registry.destroy_session(session_id)
        logger.info(f"Session ended: {session_id}")
        await self._broadcast.publish(SessionCleared(session_id=session_id))

    # observer -> coordinator

    async def handle_observer_message(self, message: Any) -> Optional[dict[str, Any]]:
        """Answer one observer request with its wire response, or None when unavailable."""
        try:
            message = parse_observer_message(message)
        except ProtocolError as e:
            logger.warning(f"Rejecting observer request: {e}")
            return None

        result: Union[SpeedResult, SessionSnapshot, None]
        if isinstance(message, ObserverSetSpeed):
            result = await self.set_speed(message.session_id, message.speed, message.require_playing)
        elif isinstance(message, ObserverChangeSpeed):
            result = await self.change_speed(
                message.session_id, message.delta, message.require_playing
            )
        elif isinstance(message, ObserverGetState):
            result = await self.get_state(message.session_id)
        elif isinstance(message, ObserverGetCachedState):
            result = self.get_cached_state(message.session_id)
        else:
            result = None
        return to_wire(result) if result is not None else None

    def _resolve(self, session_id: Optional[SessionId]) -> Optional[SessionId]:
        try:
            return self._registry.resolve_target(session_id)
        except NoTargetError:
            logger.debug("Observer request without target session")
            return None

    async def set_speed(
        self, session_id: Optional[SessionId], speed: float, require_playing: bool = False
    ) -> Optional[SpeedResult]:
        """Set an absolute speed on the most relevant context of a session.

        Non-finite speeds are forwarded unclamped so the receiving context rejects
        them and keeps its previous value.
        """
        target_session = self._resolve(session_id)
        if target_session is None:
            return None
        target = self._settings.clamp(speed) if _is_finite(speed) else speed
        command = SetSpeed(speed=target, require_playing=require_playing)
        return await self._run_speed_command(target_session, command)

    async def change_speed(
        self, session_id: Optional[SessionId], delta: float, require_playing: bool = True
    ) -> Optional[SpeedResult]:
        """Change the speed relative to the responding context's own current value."""
        target_session = self._resolve(session_id)
        if target_session is None:
            return None
        command = ChangeSpeed(delta=delta, require_playing=require_playing)
        return await self._run_speed_command(target_session, command)

    async def _run_speed_command(
        self, session_id: SessionId, command: Union[SetSpeed, ChangeSpeed]
    ) -> Optional[SpeedResult]:
        result = await self._dispatcher.dispatch(session_id, command)
        response = result.response
        if response is None or response.speed is None:
            if not self._settings.remember_last_speed:
                self._registry.clear_cache(session_id)
            return None

        policy = self._dispatcher.policy_for(command)
        self._remember(session_id, response.speed, policy.may_cache(response, result.context_id))

        applied = bool(response.applied)
        await self._broadcast.publish(
            StateChanged(
                session_id=session_id,
                speed=response.speed,
                applied=applied,
                context_id=result.context_id,
            )
        )
        return SpeedResult(
            session_id=session_id, context_id=result.context_id, speed=response.speed, applied=applied
        )

    async def get_state(self, session_id: Optional[SessionId] = None) -> Optional[SessionSnapshot]:
        """Ask the session's contexts for their state, falling back to what the coordinator knows."""
        target_session = self._resolve(session_id)
        if target_session is None:
            return None

        result = await self._dispatcher.dispatch(target_session, GetState())
        response = result.response
        if response is not None and response.speed is not None:
            return SessionSnapshot(
                session_id=target_session,
                speed=response.speed,
                enforce_on_load=(
                    response.enforce_on_load
                    if response.enforce_on_load is not None
                    else self._settings.apply_on_load
                ),
                has_playing=bool(response.has_playing),
                has_media=bool(response.has_media),
                settings=self._settings,
            )
        return self._known_state(target_session)

    def get_cached_state(self, session_id: Optional[SessionId] = None) -> Optional[SessionSnapshot]:
        """Cheap snapshot from registry knowledge; never contacts a context."""
        target_session = self._resolve(session_id)
        if target_session is None:
            return None
        return self._known_state(target_session)

    def _known_state(self, session_id: SessionId) -> Optional[SessionSnapshot]:
        session = self._registry.get_session(session_id)
        if session is None:
            return None

        known = session.first_with_speed()
        if known is not None:
            _, status = known
            return SessionSnapshot(
                session_id=session_id,
                speed=status.last_speed,
                enforce_on_load=self._settings.apply_on_load,
                has_playing=status.has_playing,
                has_media=status.has_media,
                settings=self._settings,
            )
        if session.cached_speed is not None:
            return SessionSnapshot(
                session_id=session_id,
                speed=session.cached_speed,
                enforce_on_load=self._settings.apply_on_load,
                has_playing=False,
                has_media=bool(session.contexts),
                settings=self._settings,
            )
        return None

    # settings store -> coordinator

    async def update_settings(self, changes: Union[SpeedSettings, Mapping[str, Any]]) -> SpeedSettings:
        """Apply a settings change notification and push the new snapshot to every context.

        Turning speed memorization off drops every remembered speed at once.
        """
        if isinstance(changes, SpeedSettings):
            settings = changes
        else:
            settings = self._settings.merged(dict(changes))
        self._settings = settings
        if not settings.remember_last_speed:
            self._registry.clear_all_caches()

        command = ConfigChanged(settings=settings)
        policy = self._dispatcher.policy_for(command)
        for session_id in self._registry.sessions():
            results = await self._dispatcher.deliver_to_all(session_id, command)
            best = _preferred(results, policy)
            if best is not None and best.response.speed is not None:
                await self._broadcast.publish(
                    StateChanged(
                        session_id=session_id,
                        speed=best.response.speed,
                        applied=bool(best.response.applied),
                        context_id=best.context_id,
                    )
                )
        logger.info("Settings updated")
        return settings

    def _remember(self, session_id: SessionId, speed: float, allowed: bool) -> None:
        if not self._settings.remember_last_speed:
            self._registry.clear_cache(session_id)
        elif allowed:
            self._registry.cache_speed(session_id, speed)


def _preferred(results: list[DispatchResult], policy: CommandPolicy) -> Optional[DispatchResult]:
    for result in results:
        if policy.took_effect(result.response):
            return result
    return results[0] if results else None
