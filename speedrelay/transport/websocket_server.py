"""Speedrelay WebSocket Server

Real-time WebSocket endpoint for contexts and observers. Every connection starts
with a ``HELLO`` naming its role:

- context peers send fire-and-forget reports and answer coordinator commands;
  commands carry a ``requestId`` that the reply echoes as ``replyTo``
- observer peers send ``OBSERVER_*`` requests (optionally with a ``requestId``)
  and receive every broadcast event

The server is also the coordinator's context transport.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

import websockets
import websockets.exceptions

from speedrelay.broadcast.events import BroadcastEvent
from speedrelay.config import DELIVERY_TIMEOUT, SPEEDRELAY_HOST, SPEEDRELAY_PORT
from speedrelay.exceptions import DeliveryFailure, ProtocolError
from speedrelay.protocol.messages import (
    ContextCommand,
    ContextId,
    SessionId,
    parse_hello,
    to_wire,
)

if TYPE_CHECKING:
    from speedrelay.coordinator import Coordinator

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Peer:
    role: str
    session_id: Optional[SessionId] = None
    context_id: Optional[ContextId] = None
    inbox: Optional[asyncio.Queue] = None
    worker: Optional[asyncio.Task] = None


@dataclass(eq=False)
class _PendingRequest:
    websocket: Any
    session_id: SessionId
    context_id: ContextId
    future: asyncio.Future = field(repr=False)


class RelayWebSocketServer:
    """WebSocket server connecting contexts and observers to one coordinator"""

    def __init__(
        self,
        host: str = SPEEDRELAY_HOST,
        port: int = SPEEDRELAY_PORT,
        timeout: float = DELIVERY_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.clients: set[Any] = set()
        self.observers: set[Any] = set()
        self.contexts: dict[tuple[SessionId, ContextId], Any] = {}
        self.server: Optional[Any] = None
        self.running: bool = False
        self._pending: dict[str, _PendingRequest] = {}
        self._coordinator: Optional["Coordinator"] = None
        self._unsubscribe = None

        logging.getLogger("websockets").setLevel(logging.WARNING)

    def bind(self, coordinator: "Coordinator") -> None:
        """Serve this coordinator and forward its broadcast to observers"""
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._coordinator = coordinator
        self._unsubscribe = coordinator.broadcast.subscribe(self._on_broadcast_event)
        logger.info("Event monitoring registered")

    @property
    def coordinator(self) -> "Coordinator":
        if self._coordinator is None:
            raise RuntimeError("Server is not bound to a coordinator")
        return self._coordinator

    # transport

    async def send(
        self, session_id: SessionId, context_id: ContextId, command: ContextCommand
    ) -> Optional[Any]:
        websocket = self.contexts.get((session_id, context_id))
        if websocket is None:
            raise DeliveryFailure(session_id, context_id, "not connected")

        request_id = uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = _PendingRequest(websocket, session_id, context_id, future)
        payload = to_wire(command)
        payload["requestId"] = request_id
        try:
            await websocket.send(json.dumps(payload))
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError as e:
            raise DeliveryFailure(session_id, context_id, "timed out") from e
        except websockets.exceptions.ConnectionClosed as e:
            raise DeliveryFailure(session_id, context_id, "connection closed") from e
        finally:
            self._pending.pop(request_id, None)

    # connections

    async def handle_client(self, websocket):
        """Handle WebSocket client connection"""
        self.clients.add(websocket)
        peer: Optional[_Peer] = None
        logger.info("Client connected")

        try:
            async for raw in websocket:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON frame")
                    continue
                if not isinstance(data, dict):
                    continue
                if peer is None:
                    peer = await self._handshake(data, websocket)
                    continue
                response = await self._process_message(peer, data, websocket)
                if response is not None:
                    await websocket.send(json.dumps(response))
        except websockets.exceptions.ConnectionClosed:
            pass
        except Exception as e:
            logger.error(f"Client error: {e}")
        finally:
            await self._drop(websocket, peer)
            logger.info("Client disconnected")

    async def _handshake(self, data: dict, websocket) -> Optional[_Peer]:
        try:
            hello = parse_hello(data)
        except ProtocolError as e:
            await websocket.send(json.dumps({"success": False, "error": str(e)}))
            return None

        if hello.role == "observer":
            self.observers.add(websocket)
            await websocket.send(json.dumps({"success": True, "role": "observer"}))
            return _Peer(role="observer")

        if hello.session_id is None:
            await websocket.send(
                json.dumps({"success": False, "error": "Context peers must name their session"})
            )
            return None

        peer = _Peer(role="context", session_id=hello.session_id, context_id=hello.context_id)
        peer.inbox = asyncio.Queue()
        peer.worker = asyncio.create_task(self._drain_reports(peer))
        self.contexts[(hello.session_id, hello.context_id)] = websocket
        await websocket.send(
            json.dumps(
                {
                    "success": True,
                    "role": "context",
                    "sessionId": hello.session_id,
                    "contextId": hello.context_id,
                }
            )
        )
        return peer

    async def _process_message(self, peer: _Peer, data: dict, websocket) -> Optional[dict]:
        """Process one message of an identified peer and return the reply, if any"""
        if peer.role == "context":
            reply_to = data.pop("replyTo", None)
            if reply_to is not None:
                self._resolve_reply(reply_to, data, websocket)
            else:
                # reports are handled in order, off the read loop, so replies keep flowing
                await peer.inbox.put(data)
            return None

        request_id = data.get("requestId")
        try:
            result = await self.coordinator.handle_observer_message(data)
        except Exception as e:
            logger.error(f"Observer request failed: {e}")
            result = None
        response: dict[str, Any] = {"type": f"{data.get('type')}_RESULT", "result": result}
        if request_id is not None:
            response["replyTo"] = request_id
        return response

    def _resolve_reply(self, request_id: str, data: dict, websocket) -> None:
        pending = self._pending.get(request_id)
        if pending is None or pending.websocket is not websocket:
            logger.debug(f"Dropping late or foreign reply {request_id}")
            return
        if not pending.future.done():
            pending.future.set_result(data or None)

    async def _drain_reports(self, peer: _Peer) -> None:
        while True:
            data = await peer.inbox.get()
            if data is None:
                return
            try:
                await self.coordinator.handle_context_message(peer.session_id, peer.context_id, data)
            except Exception as e:
                logger.error(f"Report from {peer.session_id}/{peer.context_id} failed: {e}")

    async def _drop(self, websocket, peer: Optional[_Peer]) -> None:
        self.clients.discard(websocket)
        self.observers.discard(websocket)
        if peer is None or peer.role != "context":
            return

        key = (peer.session_id, peer.context_id)
        if self.contexts.get(key) is websocket:
            del self.contexts[key]
        for pending in list(self._pending.values()):
            if pending.websocket is websocket and not pending.future.done():
                pending.future.set_exception(
                    DeliveryFailure(pending.session_id, pending.context_id, "connection closed")
                )
        if peer.worker is not None:
            await peer.inbox.put(None)
            await peer.worker

    # broadcast

    async def _on_broadcast_event(self, event: BroadcastEvent) -> None:
        await self._broadcast_to_observers(event.model_dump(by_alias=True, mode="json"))

    async def _broadcast_to_observers(self, message: dict) -> None:
        """Broadcast message to every observer"""
        if not self.observers:
            return

        data = json.dumps(message)
        disconnected = set()
        for client in self.observers.copy():
            try:
                await client.send(data)
            except Exception:
                disconnected.add(client)

        for client in disconnected:
            self.clients.discard(client)
            self.observers.discard(client)

    # lifecycle

    async def start(self) -> None:
        """Start accepting connections"""
        self.server = await websockets.serve(
            self.handle_client, self.host, self.port, ping_interval=20, ping_timeout=10
        )
        self.running = True
        logger.info(f"WebSocket server started on {self.host}:{self.port}")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await self.server.wait_closed()
        finally:
            self.running = False

    async def stop(self) -> None:
        """Stop the WebSocket server"""
        self.running = False
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
