"""
NATS fan-out for broadcast events.
"""

import asyncio

import nats

from speedrelay.broadcast.events import BroadcastEvent
from speedrelay.config import NATS_SUBJECT_TEMPLATE
from speedrelay.logging import logger


class NatsBroadcastSink:
    """Broadcast observer that publishes every event as JSON on a per-session NATS subject."""

    def __init__(
        self,
        nats_client_config: dict | None = None,
        subject_template: str = NATS_SUBJECT_TEMPLATE,
    ):
        """
        Initialize the sink.

        Args:
            nats_client_config (dict | None): Keyword arguments for ``nats.connect``.
            subject_template (str): Subject with a ``{session_id}`` placeholder.
        """
        self._nats_config = nats_client_config or {}
        self._subject_template = subject_template
        self._nats_client: nats.NATS | None = None
        self._connect_lock = asyncio.Lock()

    async def connect(self):
        """Connect to the NATS server. Subsequent calls are no-ops while connected."""
        if "servers" not in self._nats_config:
            raise ValueError("NATS connection is missing.")

        async with self._connect_lock:
            if self._nats_client is not None:
                return
            self._nats_client = await nats.connect(**self._nats_config)
            logger.debug("NATS broadcast sink connected")

    async def close(self):
        """Drain and close the connection. Safe to call multiple times."""
        async with self._connect_lock:
            if self._nats_client:
                try:
                    await self._nats_client.drain()
                finally:
                    self._nats_client = None
            logger.debug("NATS broadcast sink closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def is_connected(self) -> bool:
        return self._nats_client is not None and self._nats_client.is_connected

    def subject_for(self, event: BroadcastEvent) -> str:
        return self._subject_template.format(session_id=event.session_id)

    async def __call__(self, event: BroadcastEvent) -> None:
        if self._nats_client is None or not self.is_connected():
            logger.debug("NATS broadcast sink is not connected. Skipping event.")
            return

        subject = self.subject_for(event)
        try:
            await self._nats_client.publish(
                subject=subject, payload=event.model_dump_json(by_alias=True).encode()
            )
            await self._nats_client.flush()
        except Exception as e:
            logger.error(f"Failed to publish {event.type} to {subject}: {e}")
