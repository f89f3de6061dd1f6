from speedrelay.dispatch.command_policy import (
    DEFAULT_POLICIES,
    CachePolicy,
    CommandPolicy,
    resolve_policies,
)
from speedrelay.dispatch.dispatcher import CommandDispatcher, DispatchResult
from speedrelay.dispatch.transport_interface import ContextTransport

__all__ = [
    "CommandDispatcher",
    "DispatchResult",
    "ContextTransport",
    "CommandPolicy",
    "CachePolicy",
    "DEFAULT_POLICIES",
    "resolve_policies",
]
