"""Speedrelay broadcast events

Notifications published to every observer, independent of the request/response
path. Observers never answer them.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from speedrelay.protocol.messages import ContextId, SessionId


class BroadcastEvent(BaseModel):
    """Base class for all broadcast events"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: str
    session_id: SessionId
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StateChanged(BroadcastEvent):
    """Speed of a session changed or was confirmed"""

    type: Literal["STATE_CHANGED"] = "STATE_CHANGED"
    speed: float
    applied: bool
    context_id: Optional[ContextId] = None


class ContextStatusChanged(BroadcastEvent):
    """A context reported its media status"""

    type: Literal["CONTEXT_STATUS"] = "CONTEXT_STATUS"
    context_id: ContextId
    has_media: bool
    has_playing: bool
    speed: Optional[float] = None


class SessionCleared(BroadcastEvent):
    """A session ended; status surfaces should stop showing it"""

    type: Literal["SESSION_CLEARED"] = "SESSION_CLEARED"


# Observers may be plain functions or coroutines
EventCallback = Callable[[BroadcastEvent], Union[None, Awaitable[None]]]
