"""Speedrelay Command Dispatcher

Sends a command to the contexts of one session, one at a time, in order of how
likely each is to be what the user is watching:

1. contexts with playing media (registry order)
2. contexts with media that is not playing
3. the sentinel top-level context, which exists even if it never reported

The first reply that shows the command took effect ends the dispatch.
Unreachable contexts are pruned from the registry and never retried within the
same dispatch; the sentinel is never pruned.
"""

from typing import Optional

from pydantic import BaseModel

from speedrelay.dispatch.command_policy import CommandPolicy, resolve_policies
from speedrelay.dispatch.transport_interface import ContextTransport
from speedrelay.exceptions import DeliveryFailure, NoApplicableContext, ProtocolError
from speedrelay.logging import logger
from speedrelay.protocol.messages import (
    SENTINEL_CONTEXT_ID,
    ContextCommand,
    ContextId,
    ContextResponse,
    SessionId,
    parse_context_response,
)
from speedrelay.registry.session_registry import Session, SessionRegistry


class DispatchResult(BaseModel):
    """Context that answered and its reply; both None when nothing was reachable"""

    model_config = {"frozen": True}

    context_id: Optional[ContextId] = None
    response: Optional[ContextResponse] = None

    @property
    def found(self) -> bool:
        return self.response is not None


class CommandDispatcher:
    """Routes commands to the contexts of a session and reconciles their replies"""

    def __init__(
        self,
        registry: SessionRegistry,
        transport: ContextTransport,
        policies: Optional[dict[str, CommandPolicy]] = None,
    ):
        self._registry = registry
        self._transport = transport
        self._policies = resolve_policies(policies)

    @property
    def transport(self) -> ContextTransport:
        return self._transport

    def policy_for(self, command: ContextCommand) -> CommandPolicy:
        return self._policies[command.type]

    def candidates(self, session_id: SessionId) -> list[ContextId]:
        """Candidate contexts in priority order for a registry snapshot"""
        contexts = self._registry.contexts(session_id)
        ordered = [context_id for context_id, status in contexts if status.has_playing]
        ordered += [
            context_id
            for context_id, status in contexts
            if status.has_media and not status.has_playing
        ]
        if SENTINEL_CONTEXT_ID not in ordered:
            ordered.append(SENTINEL_CONTEXT_ID)
        return ordered

    async def deliver(
        self, session_id: SessionId, context_id: ContextId, command: ContextCommand
    ) -> Optional[ContextResponse]:
        """Send a command to one context and fold its reply into the registry.

        An unreachable context is pruned (unless it is the sentinel) and yields None.
        A reply that arrives after its session was destroyed or replaced is
        discarded and yields None as well.
        """
        session = self._registry.get_session(session_id)
        try:
            raw = await self._transport.send(session_id, context_id, command)
        except DeliveryFailure as e:
            if self._is_stale(session_id, session):
                return None
            if context_id != SENTINEL_CONTEXT_ID:
                self._registry.remove_context(session_id, context_id)
                logger.warning(f"Pruned unreachable context {session_id}/{context_id}: {e.reason}")
            else:
                logger.debug(f"Top-level context of {session_id} unreachable: {e.reason}")
            return None

        if self._is_stale(session_id, session):
            logger.debug(f"Discarding reply from {session_id}/{context_id}: session ended meanwhile")
            return None
        try:
            response = parse_context_response(raw)
        except ProtocolError as e:
            logger.warning(f"Ignoring malformed reply from {session_id}/{context_id}: {e}")
            return None
        if response is not None:
            self._registry.merge_response(session_id, context_id, response)
        return response

    def _is_stale(self, session_id: SessionId, session: Optional[Session]) -> bool:
        return session is not None and self._registry.get_session(session_id) is not session

    async def deliver_to_all(
        self, session_id: SessionId, command: ContextCommand
    ) -> list[DispatchResult]:
        """Send a command to every known context of a session, in registry order."""
        session = self._registry.get_session(session_id)
        results = []
        for context_id, _ in self._registry.contexts(session_id):
            response = await self.deliver(session_id, context_id, command)
            if self._is_stale(session_id, session):
                return []
            if response is not None:
                results.append(DispatchResult(context_id=context_id, response=response))
        return results

    async def dispatch(self, session_id: SessionId, command: ContextCommand) -> DispatchResult:
        """Send a command to candidates in turn until one reports it took effect.

        Args:
            session_id: Target session
            command: Command to deliver

        Returns:
            The reply that took effect, else the first reply received, else an
            empty result. The result is empty as well when the session ended
            while the dispatch was in flight.
        """
        session = self._registry.ensure_session(session_id)
        policy = self.policy_for(command)
        tried: set[ContextId] = set()
        first: Optional[DispatchResult] = None

        for context_id in self.candidates(session_id):
            if context_id in tried:
                continue
            tried.add(context_id)

            response = await self.deliver(session_id, context_id, command)
            if self._is_stale(session_id, session):
                logger.debug(f"{command.type} for {session_id} abandoned: session ended")
                return DispatchResult()
            if response is None:
                continue

            result = DispatchResult(context_id=context_id, response=response)
            if first is None:
                first = result
            if policy.took_effect(response):
                logger.debug(f"{command.type} took effect in {session_id}/{context_id}")
                return result

        if first is None:
            logger.debug(f"{command.type} reached no context in session {session_id}")
            return DispatchResult()
        return first

    async def dispatch_or_raise(self, session_id: SessionId, command: ContextCommand) -> DispatchResult:
        """Like dispatch, but raise when no context was reachable.

        Raises:
            NoApplicableContext: if every candidate failed or stayed silent
        """
        result = await self.dispatch(session_id, command)
        if not result.found:
            raise NoApplicableContext(session_id)
        return result
