"""Speedrelay transports

Context transports used by the dispatcher:
- InProcessTransport: local playback controllers in the same event loop
- RelayWebSocketServer: contexts and observers connected over WebSocket
"""

from speedrelay.transport.in_process import InProcessTransport
from speedrelay.transport.websocket_server import RelayWebSocketServer

__all__ = ["InProcessTransport", "RelayWebSocketServer"]
