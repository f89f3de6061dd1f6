"""Speedrelay protocol layer

Message vocabulary and parsing helpers shared by the coordinator, the
transports and the reference local controller.
"""

from speedrelay.protocol.messages import (
    SENTINEL_CONTEXT_ID,
    ActivityReport,
    ChangeSpeed,
    ConfigChanged,
    ContextCommand,
    ContextId,
    ContextMessage,
    ContextRemoved,
    ContextResponse,
    GetState,
    Hello,
    ObserverChangeSpeed,
    ObserverGetCachedState,
    ObserverGetState,
    ObserverMessage,
    ObserverSetSpeed,
    ProtocolMessage,
    SessionEnded,
    SessionFocused,
    SessionId,
    SessionSnapshot,
    SetSpeed,
    SpeedResult,
    StatusReport,
    parse_context_command,
    parse_context_message,
    parse_context_response,
    parse_hello,
    parse_observer_message,
    to_wire,
)

__all__ = [
    # Identifiers
    "SessionId",
    "ContextId",
    "SENTINEL_CONTEXT_ID",
    "ProtocolMessage",
    # Commands
    "GetState",
    "SetSpeed",
    "ChangeSpeed",
    "ConfigChanged",
    "ContextCommand",
    # Context reports
    "StatusReport",
    "ActivityReport",
    "SessionFocused",
    "SessionEnded",
    "ContextRemoved",
    "ContextMessage",
    # Observer requests
    "ObserverSetSpeed",
    "ObserverChangeSpeed",
    "ObserverGetState",
    "ObserverGetCachedState",
    "ObserverMessage",
    "Hello",
    # Responses
    "ContextResponse",
    "SpeedResult",
    "SessionSnapshot",
    # Parsing
    "parse_context_command",
    "parse_context_message",
    "parse_observer_message",
    "parse_context_response",
    "parse_hello",
    "to_wire",
]
