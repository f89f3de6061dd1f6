"""Per-session status indicator

Keeps what a toolbar badge would show for every session: the speed with two
decimals (fixed width) and a colour telling whether it is applied to playing
media. Drawing the badge is left to the embedding surface.
"""

import math
from typing import Optional

from pydantic import BaseModel

from speedrelay.broadcast.events import (
    BroadcastEvent,
    ContextStatusChanged,
    SessionCleared,
    StateChanged,
)
from speedrelay.broadcast.observer_broadcast import ObserverBroadcast
from speedrelay.protocol.messages import SessionId

BADGE_COLOR_APPLIED = "#0ea5e9"
BADGE_COLOR_IDLE = "#9ca3af"


def badge_text(value: Optional[float]) -> str:
    if value is None:
        return ""
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return ""
    if not math.isfinite(numeric):
        return ""
    return f"{numeric:.2f}"


class Badge(BaseModel):
    model_config = {"frozen": True}

    text: str
    color: str


class BadgeIndicator:
    """Broadcast observer that tracks the badge of every session"""

    def __init__(self):
        self._badges: dict[SessionId, Badge] = {}

    def attach(self, broadcast: ObserverBroadcast):
        return broadcast.subscribe(self)

    def __call__(self, event: BroadcastEvent) -> None:
        if isinstance(event, StateChanged):
            self._set(event.session_id, event.speed, event.applied)
        elif isinstance(event, ContextStatusChanged):
            if event.speed is not None:
                self._set(event.session_id, event.speed, event.has_playing)
        elif isinstance(event, SessionCleared):
            self._badges.pop(event.session_id, None)

    def _set(self, session_id: SessionId, speed: float, applied: bool) -> None:
        self._badges[session_id] = Badge(
            text=badge_text(speed), color=BADGE_COLOR_APPLIED if applied else BADGE_COLOR_IDLE
        )

    def get(self, session_id: SessionId) -> Optional[Badge]:
        return self._badges.get(session_id)
