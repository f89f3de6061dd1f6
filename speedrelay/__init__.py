"""Speedrelay: keep one playback speed per browsing session across all of its contexts."""

from speedrelay import broadcast, protocol
from speedrelay.config import SpeedSettings, default_settings
from speedrelay.coordinator import Coordinator
from speedrelay.dispatch import CommandDispatcher, CommandPolicy, DispatchResult
from speedrelay.exceptions import (
    DeliveryFailure,
    InvalidCommand,
    NoApplicableContext,
    NoTargetError,
    ProtocolError,
    SpeedRelayError,
)
from speedrelay.local import LocalPlaybackController, MediaElement
from speedrelay.logging import logger
from speedrelay.registry import ContextStatus, Session, SessionRegistry
from speedrelay.transport import InProcessTransport, RelayWebSocketServer

__all__ = [
    "broadcast",
    "protocol",
    "Coordinator",
    "SpeedSettings",
    "default_settings",
    "SessionRegistry",
    "Session",
    "ContextStatus",
    "CommandDispatcher",
    "CommandPolicy",
    "DispatchResult",
    "LocalPlaybackController",
    "MediaElement",
    "InProcessTransport",
    "RelayWebSocketServer",
    "SpeedRelayError",
    "NoTargetError",
    "DeliveryFailure",
    "NoApplicableContext",
    "InvalidCommand",
    "ProtocolError",
    "logger",
]
