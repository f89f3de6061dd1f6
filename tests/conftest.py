from typing import Any

import pytest

from speedrelay.broadcast import ObserverBroadcast
from speedrelay.coordinator import Coordinator
from speedrelay.exceptions import DeliveryFailure
from speedrelay.registry import SessionRegistry


class ScriptedTransport:
    """Context transport answering from per-context scripts.

    A script is a reply dict, None, an exception to raise or a callable taking
    the command. Contexts without a script are unreachable.
    """

    def __init__(self):
        self.scripts: dict[tuple[str, int], Any] = {}
        self.sent: list[tuple[str, int, Any]] = []

    def reply(self, session_id: str, context_id: int, script: Any) -> None:
        self.scripts[(session_id, context_id)] = script

    def targets(self) -> list[tuple[str, int]]:
        return [(session_id, context_id) for session_id, context_id, _ in self.sent]

    async def send(self, session_id, context_id, command):
        self.sent.append((session_id, context_id, command))
        key = (session_id, context_id)
        if key not in self.scripts:
            raise DeliveryFailure(session_id, context_id, "no receiving end")
        script = self.scripts[key]
        if isinstance(script, Exception):
            raise script
        if callable(script):
            return script(command)
        return script


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def coordinator(transport, registry):
    return Coordinator(transport=transport, registry=registry, broadcast=ObserverBroadcast())


@pytest.fixture
def events(coordinator):
    """Every event the coordinator broadcasts"""
    received = []
    coordinator.broadcast.subscribe(received.append)
    return received
