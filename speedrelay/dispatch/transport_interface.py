"""Context transport interface

The dispatcher talks to contexts only through this protocol, so the same
dispatch algorithm runs over the in-process transport and the websocket server.
"""

from typing import Any, Optional, Protocol

from speedrelay.protocol.messages import ContextCommand, ContextId, SessionId


class ContextTransport(Protocol):
    """Delivers one command to one context and returns its reply"""

    async def send(
        self, session_id: SessionId, context_id: ContextId, command: ContextCommand
    ) -> Optional[Any]:
        """Send a command and await the reply.

        Returns:
            The reply (a ContextResponse or its wire dict), or None if the context
            answered without a payload.

        Raises:
            DeliveryFailure: if the context is gone or did not answer in time
        """
        ...
