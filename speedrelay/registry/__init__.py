from speedrelay.registry.session_registry import (
    ContextStatus,
    Session,
    SessionRegistry,
    merge_status,
    status_updates_from_response,
)

__all__ = [
    "ContextStatus",
    "Session",
    "SessionRegistry",
    "merge_status",
    "status_updates_from_response",
]
