"""Speedrelay message vocabulary

Every message exchanged between the coordinator, the contexts and the observers
is a pydantic model with a literal ``type`` discriminator. On the wire the
models are JSON objects with camelCase keys.

Directions:
- coordinator -> context: ``GET_STATE``, ``SET_SPEED``, ``CHANGE_SPEED``, ``CONFIG_CHANGED``
- context -> coordinator: ``STATUS_REPORT``, ``ACTIVITY_REPORT``, ``SESSION_FOCUSED``,
  ``SESSION_ENDED``, ``CONTEXT_REMOVED`` (fire-and-forget)
- observer -> coordinator: ``OBSERVER_SET_SPEED``, ``OBSERVER_CHANGE_SPEED``,
  ``OBSERVER_GET_STATE``, ``OBSERVER_GET_CACHED_STATE``
- any peer -> websocket server: ``HELLO``
"""

import math
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from speedrelay.config import SpeedSettings
from speedrelay.exceptions import ProtocolError

SessionId = str
ContextId = int

# The top-level document of a session; always tried last and never pruned
SENTINEL_CONTEXT_ID: ContextId = 0


class ProtocolMessage(BaseModel):
    """Base class for all wire messages"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


# coordinator -> context


class GetState(ProtocolMessage):
    type: Literal["GET_STATE"] = "GET_STATE"


class SetSpeed(ProtocolMessage):
    type: Literal["SET_SPEED"] = "SET_SPEED"
    speed: float
    require_playing: bool = False


class ChangeSpeed(ProtocolMessage):
    type: Literal["CHANGE_SPEED"] = "CHANGE_SPEED"
    delta: float = 0.0
    require_playing: bool = True


class ConfigChanged(ProtocolMessage):
    type: Literal["CONFIG_CHANGED"] = "CONFIG_CHANGED"
    settings: SpeedSettings


ContextCommand = Annotated[
    Union[GetState, SetSpeed, ChangeSpeed, ConfigChanged], Field(discriminator="type")
]


# context -> coordinator


class StatusReport(ProtocolMessage):
    type: Literal["STATUS_REPORT"] = "STATUS_REPORT"
    has_media: bool = False
    has_playing: bool = False
    speed: Optional[float] = None


class ActivityReport(ProtocolMessage):
    type: Literal["ACTIVITY_REPORT"] = "ACTIVITY_REPORT"
    speed: float
    applied: bool


class SessionFocused(ProtocolMessage):
    type: Literal["SESSION_FOCUSED"] = "SESSION_FOCUSED"


class SessionEnded(ProtocolMessage):
    type: Literal["SESSION_ENDED"] = "SESSION_ENDED"


class ContextRemoved(ProtocolMessage):
    type: Literal["CONTEXT_REMOVED"] = "CONTEXT_REMOVED"


ContextMessage = Annotated[
    Union[StatusReport, ActivityReport, SessionFocused, SessionEnded, ContextRemoved],
    Field(discriminator="type"),
]


# observer -> coordinator


class ObserverRequest(ProtocolMessage):
    """Observer request; a missing or non-finite numeric session targets the focused session"""

    session_id: Optional[SessionId] = None

    @field_validator("session_id", mode="before")
    @classmethod
    def _drop_non_finite(cls, value: Any) -> Any:
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value


class ObserverSetSpeed(ObserverRequest):
    type: Literal["OBSERVER_SET_SPEED"] = "OBSERVER_SET_SPEED"
    speed: float
    require_playing: bool = False


class ObserverChangeSpeed(ObserverRequest):
    type: Literal["OBSERVER_CHANGE_SPEED"] = "OBSERVER_CHANGE_SPEED"
    delta: float
    require_playing: bool = True


class ObserverGetState(ObserverRequest):
    type: Literal["OBSERVER_GET_STATE"] = "OBSERVER_GET_STATE"


class ObserverGetCachedState(ObserverRequest):
    type: Literal["OBSERVER_GET_CACHED_STATE"] = "OBSERVER_GET_CACHED_STATE"


ObserverMessage = Annotated[
    Union[ObserverSetSpeed, ObserverChangeSpeed, ObserverGetState, ObserverGetCachedState],
    Field(discriminator="type"),
]


class Hello(ProtocolMessage):
    """First message of every websocket connection"""

    type: Literal["HELLO"] = "HELLO"
    role: Literal["context", "observer"]
    session_id: Optional[SessionId] = None
    context_id: ContextId = SENTINEL_CONTEXT_ID


# responses


class ContextResponse(ProtocolMessage):
    """Reply of a context to any command. Every field is optional; absent fields carry no news."""

    speed: Optional[float] = None
    applied: Optional[bool] = None
    has_media: Optional[bool] = None
    has_playing: Optional[bool] = None
    enforce_on_load: Optional[bool] = None
    settings: Optional[SpeedSettings] = None


class SpeedResult(ProtocolMessage):
    """Outcome of an observer speed command"""

    session_id: SessionId
    context_id: Optional[ContextId] = None
    speed: float
    applied: bool


class SessionSnapshot(ProtocolMessage):
    """Full or cached state of a session as shown to observers"""

    session_id: SessionId
    speed: float
    enforce_on_load: bool
    has_playing: bool = False
    has_media: bool = False
    settings: SpeedSettings


_context_command_adapter: TypeAdapter = TypeAdapter(ContextCommand)
_context_message_adapter: TypeAdapter = TypeAdapter(ContextMessage)
_observer_message_adapter: TypeAdapter = TypeAdapter(ObserverMessage)


def _parse(adapter: TypeAdapter, payload: Any, kind: str):
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(by_alias=True)
    try:
        return adapter.validate_python(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {kind}: {e.error_count()} validation error(s)", payload) from e


def parse_context_command(payload: Any):
    """Validate a raw coordinator -> context command."""
    return _parse(_context_command_adapter, payload, "context command")


def parse_context_message(payload: Any):
    """Validate a raw context -> coordinator message."""
    return _parse(_context_message_adapter, payload, "context message")


def parse_observer_message(payload: Any):
    """Validate a raw observer -> coordinator request."""
    return _parse(_observer_message_adapter, payload, "observer message")


def parse_hello(payload: Any) -> Hello:
    try:
        return Hello.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError("Invalid HELLO message", payload) from e


def parse_context_response(payload: Any) -> Optional[ContextResponse]:
    """Validate a context reply; ``None`` and empty replies mean the context had nothing to say."""
    if payload is None:
        return None
    if isinstance(payload, ContextResponse):
        return payload
    try:
        return ContextResponse.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError("Invalid context response", payload) from e


def to_wire(message: BaseModel) -> dict[str, Any]:
    """Serialize a message to its JSON-ready camelCase form."""
    return message.model_dump(by_alias=True, mode="json", exclude_none=True)
