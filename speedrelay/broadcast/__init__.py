"""Speedrelay Observer Broadcast

Fan-out of state-change notifications to passive observers:
- events.py: broadcast event models
- observer_broadcast.py: subscription and delivery
- badge.py: per-session status indicator observer
- nats_sink.py: optional NATS publisher observer
"""

from speedrelay.broadcast.badge import (
    BADGE_COLOR_APPLIED,
    BADGE_COLOR_IDLE,
    Badge,
    BadgeIndicator,
    badge_text,
)
from speedrelay.broadcast.events import (
    BroadcastEvent,
    ContextStatusChanged,
    EventCallback,
    SessionCleared,
    StateChanged,
)
from speedrelay.broadcast.observer_broadcast import ObserverBroadcast

__all__ = [
    # Events
    "BroadcastEvent",
    "StateChanged",
    "ContextStatusChanged",
    "SessionCleared",
    "EventCallback",
    # Fan-out
    "ObserverBroadcast",
    # Status indicator
    "Badge",
    "BadgeIndicator",
    "badge_text",
    "BADGE_COLOR_APPLIED",
    "BADGE_COLOR_IDLE",
]
