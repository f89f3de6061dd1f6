"""In-process context transport

Connects a coordinator to local playback controllers living in the same event
loop. Each controller is attached under its (session, context) address and its
reports are routed back into the coordinator.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Optional

from speedrelay.config import DELIVERY_TIMEOUT
from speedrelay.exceptions import DeliveryFailure
from speedrelay.local.playback_controller import LocalPlaybackController
from speedrelay.protocol.messages import ContextCommand, ContextId, ProtocolMessage, SessionId

if TYPE_CHECKING:
    from speedrelay.coordinator import Coordinator


class InProcessTransport:
    """Delivers commands to attached controllers with a bounded wait"""

    def __init__(self, timeout: float = DELIVERY_TIMEOUT):
        self._timeout = timeout
        self._controllers: dict[tuple[SessionId, ContextId], LocalPlaybackController] = {}
        self._coordinator: Optional["Coordinator"] = None

    def bind(self, coordinator: "Coordinator") -> None:
        """Route controller reports to this coordinator"""
        self._coordinator = coordinator

    def attach(
        self, session_id: SessionId, context_id: ContextId, controller: LocalPlaybackController
    ) -> LocalPlaybackController:
        """Make a controller reachable and wire its reports to the bound coordinator"""
        self._controllers[(session_id, context_id)] = controller

        async def report(message: ProtocolMessage) -> None:
            if self._coordinator is not None:
                await self._coordinator.handle_context_message(session_id, context_id, message)

        controller.set_reporter(report)
        return controller

    def detach(self, session_id: SessionId, context_id: ContextId) -> None:
        """Make a controller unreachable, as if its document went away"""
        controller = self._controllers.pop((session_id, context_id), None)
        if controller is not None:
            controller.set_reporter(None)

    def controller(self, session_id: SessionId, context_id: ContextId) -> Optional[LocalPlaybackController]:
        return self._controllers.get((session_id, context_id))

    async def send(
        self, session_id: SessionId, context_id: ContextId, command: ContextCommand
    ) -> Optional[Any]:
        controller = self._controllers.get((session_id, context_id))
        if controller is None:
            raise DeliveryFailure(session_id, context_id, "no receiving end")
        try:
            return await asyncio.wait_for(controller.handle_command(command), self._timeout)
        except asyncio.TimeoutError as e:
            raise DeliveryFailure(session_id, context_id, "timed out") from e
