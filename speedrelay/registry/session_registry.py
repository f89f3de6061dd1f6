"""Speedrelay Session Registry

Per-session table of known contexts and their last reported status, the
remembered speed of every session and the pointer to the most recently active
session. The registry is owned by a single coordinator and mutated only from
its event loop, so it carries no locks.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, model_validator

from speedrelay.exceptions import NoTargetError
from speedrelay.logging import logger
from speedrelay.protocol.messages import ContextId, ContextResponse, SessionId

_STATUS_FIELDS = ("has_media", "has_playing", "last_speed")


class ContextStatus(BaseModel):
    """Last known status of one execution context. Invariant: has_playing implies has_media."""

    model_config = {"frozen": True}

    has_media: bool = False
    has_playing: bool = False
    last_speed: Optional[float] = None

    @model_validator(mode="after")
    def _playing_needs_media(self) -> "ContextStatus":
        if self.has_playing and not self.has_media:
            raise ValueError("A context cannot be playing without media")
        return self


@dataclass
class Session:
    """One logical unit of coordination (a tab) and the contexts it spans"""

    session_id: SessionId
    cached_speed: Optional[float] = None
    contexts: dict[ContextId, ContextStatus] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def first_with_speed(self) -> Optional[tuple[ContextId, ContextStatus]]:
        """Return the first context (in registry order) that reported a speed."""
        for context_id, status in self.contexts.items():
            if status.last_speed is not None:
                return context_id, status
        return None


def merge_status(existing: Optional[ContextStatus], updates: Mapping[str, Any]) -> ContextStatus:
    """Merge partial status fields into a context status.

    This is the only place where context status is combined, for direct reports
    and for command responses alike. A playing context always has media: a fresh
    playing fact implies media, a fresh "no media" fact ends a stale playing flag.
    """
    data = existing.model_dump() if existing is not None else {}
    for key in _STATUS_FIELDS:
        if updates.get(key) is not None:
            data[key] = updates[key]
    if data.get("has_playing") and not data.get("has_media"):
        if updates.get("has_playing") is None:
            data["has_playing"] = False
        else:
            data["has_media"] = True
    return ContextStatus(**data)


def status_updates_from_response(response: ContextResponse) -> dict[str, Any]:
    """Extract the status facts carried by a context response.

    Explicit ``has_playing``/``has_media`` facts win. Otherwise ``applied`` tells
    whether media was playing when the command ran, and implies media.
    """
    updates: dict[str, Any] = {}
    if response.has_media is not None:
        updates["has_media"] = response.has_media
    if response.has_playing is not None:
        updates["has_playing"] = response.has_playing
    if response.applied is not None:
        updates.setdefault("has_playing", response.applied)
        updates.setdefault("has_media", True)
    if response.speed is not None:
        updates["last_speed"] = response.speed
    return updates


class SessionRegistry:
    """Owns every Session and ContextStatus known to the coordinator"""

    def __init__(self):
        self._sessions: dict[SessionId, Session] = {}
        self._focused_session: Optional[SessionId] = None

    @property
    def focused_session(self) -> Optional[SessionId]:
        """Most recently active session"""
        return self._focused_session

    def focus(self, session_id: SessionId) -> None:
        """Make a session the fallback target; most recent activity wins."""
        self.ensure_session(session_id)
        self._focused_session = session_id

    def ensure_session(self, session_id: SessionId) -> Session:
        """Get a session, creating a fresh one for an unseen identifier."""
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(session_id=session_id)
            self._sessions[session_id] = session
            logger.debug(f"Session created: {session_id}")
        return session

    def get_session(self, session_id: SessionId) -> Optional[Session]:
        return self._sessions.get(session_id)

    def has_session(self, session_id: SessionId) -> bool:
        return session_id in self._sessions

    def sessions(self) -> list[SessionId]:
        return list(self._sessions.keys())

    def upsert_context(
        self,
        session_id: SessionId,
        context_id: ContextId,
        updates: Mapping[str, Any],
        activity: bool = False,
    ) -> ContextStatus:
        """Merge status fields into a context, creating session and context if absent.

        Args:
            session_id: Owning session
            context_id: Context within the session
            updates: Partial status (``has_media``, ``has_playing``, ``last_speed``)
            activity: Whether the report is a sign of user activity, which moves focus
        """
        session = self.ensure_session(session_id)
        status = merge_status(session.contexts.get(context_id), updates)
        session.contexts[context_id] = status
        if activity:
            self._focused_session = session_id
        return status

    def merge_response(
        self, session_id: SessionId, context_id: ContextId, response: ContextResponse
    ) -> Optional[ContextStatus]:
        """Learn about a context from its reply to a command."""
        updates = status_updates_from_response(response)
        if not updates:
            return self.get_context(session_id, context_id)
        return self.upsert_context(session_id, context_id, updates)

    def get_context(self, session_id: SessionId, context_id: ContextId) -> Optional[ContextStatus]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return session.contexts.get(context_id)

    def contexts(self, session_id: SessionId) -> list[tuple[ContextId, ContextStatus]]:
        """Snapshot of a session's contexts in registry iteration order"""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return list(session.contexts.items())

    def remove_context(self, session_id: SessionId, context_id: ContextId) -> bool:
        """Forget one context. The session itself is kept even when it has no contexts left."""
        session = self._sessions.get(session_id)
        if session is None or context_id not in session.contexts:
            return False
        del session.contexts[context_id]
        logger.debug(f"Context removed: {session_id}/{context_id}")
        return True

    def destroy_session(self, session_id: SessionId) -> bool:
        """Remove a session with all its contexts and its remembered speed."""
        session = self._sessions.pop(session_id, None)
        if self._focused_session == session_id:
            self._focused_session = None
        if session is None:
            return False
        logger.debug(f"Session destroyed: {session_id}")
        return True

    def cache_speed(self, session_id: SessionId, speed: float) -> None:
        """Remember a speed for a session. Callers check the remember-speed setting first."""
        self.ensure_session(session_id).cached_speed = speed

    def clear_cache(self, session_id: SessionId) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.cached_speed = None

    def clear_all_caches(self) -> None:
        for session in self._sessions.values():
            session.cached_speed = None

    def cached_speed(self, session_id: SessionId) -> Optional[float]:
        session = self._sessions.get(session_id)
        return session.cached_speed if session is not None else None

    def resolve_target(self, session_id: Union[SessionId, int, float, None] = None) -> SessionId:
        """Return the named session, else the focused one.

        Raises:
            NoTargetError: if neither is available
        """
        if isinstance(session_id, float) and not math.isfinite(session_id):
            session_id = None
        if session_id is not None and session_id != "":
            return str(session_id)
        if self._focused_session is not None:
            return self._focused_session
        raise NoTargetError()

    def reset(self) -> None:
        """Drop every session and the focus pointer."""
        self._sessions.clear()
        self._focused_session = None
